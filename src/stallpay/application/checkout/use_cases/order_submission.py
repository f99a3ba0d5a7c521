"""Use case: deliver orders and follow-up notes to the merchant as encrypted DMs."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel, Field

from ....crypto.events import KIND_ENCRYPTED_DM, SignedEvent, UnsignedEvent
from ....domain.checkout.entities import Order
from ....domain.errors import (
    AuthenticationRequired,
    CheckoutError,
    PublishTimeout,
    UnsupportedEncryption,
)
from ....domain.shared import EventNetworkProtocol, Nip04Capability, SignerProtocol
from ...shared.checkout_messages import serialize_checkout_message
from ..order_codec import build_order_message, build_order_summary

logger = logging.getLogger(__name__)


class SubmissionReceipt(BaseModel):
    """What reached the network for one submission attempt."""

    order_id: str
    event_ids: list[str] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


class OrderSubmissionService:
    """Encrypts, signs and publishes DMs to a merchant with a bounded wait.

    When both representations are enabled an order goes out as two envelopes:
    the structured JSON first, then the human-readable text one second later,
    so clients that sort by ``created_at`` show them in a stable order.
    """

    def __init__(
        self,
        network: EventNetworkProtocol,
        signer: Optional[SignerProtocol],
        *,
        publish_timeout: float = 5.0,
        emit_structured: bool = True,
        emit_human_readable: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not (emit_structured or emit_human_readable):
            raise ValueError("At least one order representation must be emitted")
        self.network = network
        self.signer = signer
        self.publish_timeout = publish_timeout
        self.emit_structured = emit_structured
        self.emit_human_readable = emit_human_readable
        self._clock = clock

    def _require_encrypting_signer(self) -> tuple[SignerProtocol, Nip04Capability]:
        if self.signer is None:
            raise AuthenticationRequired("You must be logged in to place an order")
        nip04 = self.signer.nip04
        if nip04 is None:
            raise UnsupportedEncryption(
                "Your login method does not support encrypted messages"
            )
        return self.signer, nip04

    async def _publish_dm(
        self,
        signer: SignerProtocol,
        nip04: Nip04Capability,
        recipient: str,
        plaintext: str,
        created_at: int,
    ) -> SignedEvent:
        ciphertext = await nip04.encrypt(recipient, plaintext)
        event = await signer.sign_event(
            UnsignedEvent(
                pubkey=signer.pubkey,
                created_at=created_at,
                kind=KIND_ENCRYPTED_DM,
                tags=[["p", recipient]],
                content=ciphertext,
            )
        )
        try:
            await asyncio.wait_for(
                self.network.publish(event, timeout=self.publish_timeout),
                timeout=self.publish_timeout,
            )
        except asyncio.TimeoutError as e:
            raise PublishTimeout(
                f"Relays did not acknowledge event {event.id[:8]} "
                f"within {self.publish_timeout:g}s"
            ) from e
        return event

    def _order_payloads(self, order: Order) -> list[tuple[str, str]]:
        payloads: list[tuple[str, str]] = []
        if self.emit_structured:
            payloads.append(
                ("structured", serialize_checkout_message(build_order_message(order)))
            )
        if self.emit_human_readable:
            payloads.append(("human-readable", build_order_summary(order)))
        return payloads

    async def submit(self, order: Order) -> SubmissionReceipt:
        """Publish ``order`` to its merchant.

        Raises:
            AuthenticationRequired: If no signer is active.
            UnsupportedEncryption: If the signer cannot encrypt DMs.
            PublishTimeout: If the first envelope was not acknowledged; nothing
                was delivered and the same order can be submitted again.
        """
        signer, nip04 = self._require_encrypting_signer()
        receipt = SubmissionReceipt(order_id=order.order_id)
        base_created_at = int(self._clock())

        for offset, (label, plaintext) in enumerate(self._order_payloads(order)):
            try:
                event = await self._publish_dm(
                    signer,
                    nip04,
                    order.merchant_pubkey,
                    plaintext,
                    base_created_at + offset,
                )
            except CheckoutError as e:
                if offset == 0:
                    raise
                # The first envelope already reached the merchant; keep it.
                logger.warning(
                    "Order %s: %s envelope failed after the first was delivered: %s",
                    order.order_id,
                    label,
                    e,
                )
                receipt.failures.append(f"{label}: {e}")
                continue
            receipt.event_ids.append(event.id)
            logger.info(
                "Order %s: %s envelope published as %s",
                order.order_id,
                label,
                event.id,
            )
        return receipt

    async def send_direct_message(self, recipient: str, plaintext: str) -> SignedEvent:
        signer, nip04 = self._require_encrypting_signer()
        return await self._publish_dm(
            signer, nip04, recipient, plaintext, int(self._clock())
        )
