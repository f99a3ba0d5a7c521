"""Nostr Wallet Connect (NIP-47) client for paying invoices from a remote wallet."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, Field

from ...application.checkout.use_cases.payment_listener import poll_for_event
from ...crypto.events import (
    KIND_NWC_REQUEST,
    KIND_NWC_RESPONSE,
    EventFilter,
    SignedEvent,
    UnsignedEvent,
)
from ...crypto.signer import LocalKeySigner
from ...domain.checkout.entities import WalletPayment
from ...domain.errors import ListenerTimeout, PublishTimeout, SettlementFailure
from ...domain.shared import EventNetworkProtocol, SignerProtocol

logger = logging.getLogger(__name__)

NWC_SCHEMES = {"nostr+walletconnect", "nostrwalletconnect"}


class NwcConnection(BaseModel):
    """An established wallet connection (the parsed connection URI)."""

    wallet_pubkey: str
    relay_urls: list[str] = Field(..., min_length=1)
    secret: str
    lud16: Optional[str] = None


def parse_nwc_uri(uri: str) -> NwcConnection:
    """Parse ``nostr+walletconnect://<wallet>?relay=...&secret=...``."""
    parsed = urlparse(uri.strip())
    if parsed.scheme not in NWC_SCHEMES:
        raise ValueError("NWC URI must start with nostr+walletconnect://")
    wallet_pubkey = parsed.netloc or parsed.path.lstrip("/")
    query = parse_qs(parsed.query)
    relays = query.get("relay", [])
    secret_values = query.get("secret", [])
    if not wallet_pubkey or not relays or not secret_values:
        raise ValueError("NWC URI needs a wallet pubkey, a relay and a secret")
    return NwcConnection(
        wallet_pubkey=wallet_pubkey.lower(),
        relay_urls=relays,
        secret=secret_values[0],
        lud16=query.get("lud16", [None])[0],
    )


NetworkFactory = Callable[[list[str]], EventNetworkProtocol]
SignerFactory = Callable[[str], SignerProtocol]


class NwcWallet:
    """Pays invoices through a NIP-47 wallet service.

    Each payment publishes one encrypted ``pay_invoice`` request and polls the
    connection's relays for the response tagged with the request id.
    """

    def __init__(
        self,
        network_factory: NetworkFactory,
        *,
        signer_factory: SignerFactory = LocalKeySigner,
        publish_timeout: float = 5.0,
        response_timeout: float = 60.0,
        poll_interval: float = 1.0,
        query_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._network_factory = network_factory
        self._signer_factory = signer_factory
        self.publish_timeout = publish_timeout
        self.response_timeout = response_timeout
        self.poll_interval = poll_interval
        self.query_timeout = query_timeout
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep

    async def send_payment(self, connection: NwcConnection, bolt11: str) -> WalletPayment:
        signer = self._signer_factory(connection.secret)
        nip04 = signer.nip04
        if nip04 is None:
            raise SettlementFailure("Wallet connection key cannot encrypt requests")
        network = self._network_factory(connection.relay_urls)

        request_body = json.dumps(
            {"method": "pay_invoice", "params": {"invoice": bolt11}},
            separators=(",", ":"),
        )
        created_at = int(self._wall_clock())
        request = await signer.sign_event(
            UnsignedEvent(
                pubkey=signer.pubkey,
                created_at=created_at,
                kind=KIND_NWC_REQUEST,
                tags=[["p", connection.wallet_pubkey]],
                content=await nip04.encrypt(connection.wallet_pubkey, request_body),
            )
        )
        try:
            await asyncio.wait_for(
                network.publish(request, timeout=self.publish_timeout),
                timeout=self.publish_timeout,
            )
        except (PublishTimeout, asyncio.TimeoutError) as e:
            raise SettlementFailure("Could not reach the wallet relay") from e

        def build_filters() -> list[EventFilter]:
            return [
                EventFilter(
                    kinds=[KIND_NWC_RESPONSE],
                    authors=[connection.wallet_pubkey],
                    e_tags=[request.id],
                    since=created_at - 10,
                )
            ]

        async def extract(event: SignedEvent) -> Optional[dict[str, Any]]:
            try:
                plaintext = await nip04.decrypt(connection.wallet_pubkey, event.content)
                body = json.loads(plaintext)
            except ValueError as e:
                logger.debug("Skipping NWC response %s: %s", event.id, e)
                return None
            if not isinstance(body, dict) or body.get("result_type") != "pay_invoice":
                return None
            return body

        try:
            response = await poll_for_event(
                network,
                build_filters,
                extract,
                timeout=self.response_timeout,
                poll_interval=self.poll_interval,
                query_timeout=self.query_timeout,
                clock=self._clock,
                sleep=self._sleep,
                description="wallet response",
            )
        except ListenerTimeout as e:
            raise SettlementFailure("Wallet did not respond in time") from e

        error = response.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise SettlementFailure(message or "Wallet rejected the payment")
        result = response.get("result") or {}
        logger.info("NWC wallet settled invoice (request %s)", request.id[:8])
        return WalletPayment(
            preimage=result.get("preimage"),
            fees_paid_msat=result.get("fees_paid"),
        )
