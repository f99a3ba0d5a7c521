"""Use case: wait for merchant replies to an order by polling the relays.

The transport only offers request/response queries, so replies are picked up
by a bounded poll loop instead of a live subscription.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ....crypto.events import KIND_ENCRYPTED_DM, EventFilter, SignedEvent
from ....crypto.signer import verify_event
from ....domain.errors import (
    AuthenticationRequired,
    CheckoutCancelled,
    ListenerTimeout,
    QueryTransientFailure,
    UnsupportedEncryption,
)
from ....domain.shared import EventNetworkProtocol, Nip04Capability, SignerProtocol
from ...shared.checkout_messages import (
    OrderStatusMessage,
    PaymentRequestMessage,
    parse_checkout_message,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]
LivenessCheck = Callable[[], bool]


def _always_alive() -> bool:
    return True


async def poll_for_event(
    network: EventNetworkProtocol,
    build_filters: Callable[[], list[EventFilter]],
    extract: Callable[[SignedEvent], Awaitable[Optional[T]]],
    *,
    timeout: float,
    poll_interval: float,
    query_timeout: float = 10.0,
    is_alive: LivenessCheck = _always_alive,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
    description: str = "event",
) -> T:
    """Query until ``extract`` returns a value for one of the returned events.

    The first match wins. Events whose id or signature does not verify are
    skipped. A failed query round counts as an empty one. The
    loop checks ``is_alive`` on every iteration and never sleeps past the
    deadline; one last round runs at the deadline before giving up.

    Raises:
        CheckoutCancelled: If ``is_alive`` reports the owner has gone away.
        ListenerTimeout: If nothing matched before the deadline.
    """
    deadline = clock() + timeout
    rounds = 0
    while True:
        if not is_alive():
            raise CheckoutCancelled(f"Stopped waiting for {description}")
        rounds += 1
        try:
            events = await asyncio.wait_for(
                network.query(build_filters(), timeout=query_timeout),
                timeout=query_timeout,
            )
        except (QueryTransientFailure, asyncio.TimeoutError, ConnectionError) as e:
            logger.warning("Query for %s failed (round %d): %s", description, rounds, e)
            events = []
        else:
            logger.debug("Round %d for %s: %d events", rounds, description, len(events))

        for event in events:
            if not is_alive():
                raise CheckoutCancelled(f"Stopped waiting for {description}")
            if not verify_event(event):
                logger.warning("Skipping event %s with a bad signature", event.id[:8])
                continue
            found = await extract(event)
            if found is not None:
                return found

        remaining = deadline - clock()
        if remaining <= 0:
            raise ListenerTimeout(f"Timeout waiting for {description}")
        await sleep(min(poll_interval, remaining))


class MerchantReplyListener:
    """Correlates the merchant's encrypted DMs to an order id."""

    def __init__(
        self,
        network: EventNetworkProtocol,
        signer: Optional[SignerProtocol],
        *,
        query_timeout: float = 10.0,
        lookback_seconds: int = 300,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.network = network
        self.signer = signer
        self.query_timeout = query_timeout
        self.lookback_seconds = lookback_seconds
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep

    def _require_decrypting_signer(self) -> tuple[SignerProtocol, Nip04Capability]:
        if self.signer is None:
            raise AuthenticationRequired("User not logged in")
        nip04 = self.signer.nip04
        if nip04 is None:
            raise UnsupportedEncryption("NIP-04 decryption not supported")
        return self.signer, nip04

    async def wait_for_payment_request(
        self,
        merchant_pubkey: str,
        order_id: str,
        *,
        timeout: float = 30.0,
        poll_interval: float = 2.0,
        is_alive: LivenessCheck = _always_alive,
    ) -> PaymentRequestMessage:
        """Wait for a type 1 message carrying a Lightning invoice for ``order_id``."""
        message = await self._wait_for(
            merchant_pubkey,
            order_id,
            message_type=1,
            limit=10,
            timeout=timeout,
            poll_interval=poll_interval,
            is_alive=is_alive,
            description="payment request from merchant",
        )
        assert isinstance(message, PaymentRequestMessage)
        return message

    async def wait_for_order_status(
        self,
        merchant_pubkey: str,
        order_id: str,
        *,
        timeout: float = 120.0,
        poll_interval: float = 3.0,
        is_alive: LivenessCheck = _always_alive,
    ) -> OrderStatusMessage:
        """Wait for the first type 2 status update for ``order_id``."""
        message = await self._wait_for(
            merchant_pubkey,
            order_id,
            message_type=2,
            limit=20,
            timeout=timeout,
            poll_interval=poll_interval,
            is_alive=is_alive,
            description="payment confirmation",
        )
        assert isinstance(message, OrderStatusMessage)
        return message

    async def _wait_for(
        self,
        merchant_pubkey: str,
        order_id: str,
        *,
        message_type: int,
        limit: int,
        timeout: float,
        poll_interval: float,
        is_alive: LivenessCheck,
        description: str,
    ) -> PaymentRequestMessage | OrderStatusMessage:
        signer, nip04 = self._require_decrypting_signer()
        logger.info(
            "Waiting for %s (order %s, merchant %s)",
            description,
            order_id,
            merchant_pubkey[:8],
        )

        def build_filters() -> list[EventFilter]:
            return [
                EventFilter(
                    kinds=[KIND_ENCRYPTED_DM],
                    authors=[merchant_pubkey],
                    p_tags=[signer.pubkey],
                    since=int(self._wall_clock()) - self.lookback_seconds,
                    limit=limit,
                )
            ]

        async def extract(
            event: SignedEvent,
        ) -> Optional[PaymentRequestMessage | OrderStatusMessage]:
            try:
                plaintext = await nip04.decrypt(merchant_pubkey, event.content)
            except Exception as e:
                logger.debug("Skipping event %s: cannot decrypt (%s)", event.id, e)
                return None
            try:
                message = parse_checkout_message(plaintext)
            except ValueError:
                return None
            if message.id != order_id or message.type != message_type:
                return None
            if (
                isinstance(message, PaymentRequestMessage)
                and message.lightning_invoice() is None
            ):
                logger.info("Payment request for %s has no ln option", order_id)
                return None
            return message  # type: ignore[return-value]

        return await poll_for_event(
            self.network,
            build_filters,
            extract,
            timeout=timeout,
            poll_interval=poll_interval,
            query_timeout=self.query_timeout,
            is_alive=is_alive,
            clock=self._clock,
            sleep=self._sleep,
            description=description,
        )
