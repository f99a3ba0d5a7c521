"""Pytest fixtures for use case tests."""

from __future__ import annotations

from typing import Any, AsyncGenerator, Callable

import httpx
import pytest

from stallpay.application.checkout.use_cases.checkout_session import CheckoutSession
from stallpay.application.checkout.use_cases.order_submission import (
    OrderSubmissionService,
)
from stallpay.application.checkout.use_cases.payment_dispatcher import (
    PaymentDispatcher,
)
from stallpay.application.checkout.use_cases.payment_listener import (
    MerchantReplyListener,
)
from stallpay.infrastructure.lightning.exchange_rate import ExchangeRateClient
from stallpay.infrastructure.lightning.lnurl_client import LnurlClient
from tests.fixtures.lightning_backend import (
    LIGHTNING_ADDRESS,
    ORDER_ID,
    RATE_URL,
    FakeLightningBackend,
)


@pytest.fixture
def lightning_backend() -> FakeLightningBackend:
    return FakeLightningBackend()


@pytest.fixture
async def lightning_clients(
    lightning_backend: FakeLightningBackend,
) -> AsyncGenerator[tuple[ExchangeRateClient, LnurlClient], None]:
    transport = httpx.MockTransport(lightning_backend)
    exchange_rate = ExchangeRateClient(RATE_URL, transport=transport)
    lnurl = LnurlClient(transport=transport)
    yield exchange_rate, lnurl
    await exchange_rate.aclose()
    await lnurl.aclose()


@pytest.fixture
def make_session(
    event_network,
    buyer_signer,
    merchant_signer,
    product,
    digital_zone,
    physical_zone,
    lightning_clients,
    fake_clock,
) -> Callable[..., CheckoutSession]:
    """Build a session; keyword arguments override the session's collaborators."""

    def factory(
        *,
        signer: Any = buyer_signer,
        remote_wallet: Any = None,
        in_app_wallet: Any = None,
        **overrides: Any,
    ) -> CheckoutSession:
        exchange_rate, lnurl = lightning_clients
        submission = OrderSubmissionService(event_network, signer)
        options: dict[str, Any] = dict(
            merchant_pubkey=merchant_signer.pubkey,
            product=product,
            shipping_zones=[digital_zone, physical_zone],
            submission=submission,
            listener=MerchantReplyListener(
                event_network, signer, clock=fake_clock, sleep=fake_clock.sleep
            ),
            dispatcher=PaymentDispatcher(
                submission,
                remote_wallet=remote_wallet,
                remote_connection=object() if remote_wallet else None,
                in_app_wallet=in_app_wallet,
            ),
            exchange_rate=exchange_rate,
            lnurl=lnurl,
            lightning_address=LIGHTNING_ADDRESS,
            id_factory=lambda: ORDER_ID,
        )
        options.update(overrides)
        return CheckoutSession(**options)

    return factory
