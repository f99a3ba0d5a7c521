"""Use case tests for the CheckoutSession state machine."""

from __future__ import annotations

import asyncio
import json

import pytest

from stallpay.application.checkout.dtos import CheckoutFormDTO
from stallpay.application.checkout.use_cases.checkout_session import CheckoutStep
from stallpay.application.checkout.use_cases.payment_dispatcher import PaymentChannel
from stallpay.application.checkout.use_cases.payment_listener import (
    MerchantReplyListener,
)
from stallpay.domain.errors import (
    AuthenticationRequired,
    InvalidCheckoutState,
    PaymentInProgress,
    PublishTimeout,
)
from tests.fixtures import (
    TestInAppWallet,
    TestQrRenderer,
    TestRemoteWallet,
    build_dm,
    order_status_payload,
    payment_request_payload,
)
from tests.fixtures.lightning_backend import ORDER_ID

DIGITAL_FORM = CheckoutFormDTO(shipping_id="digital", email="ada@example.com")
PHYSICAL_FORM = CheckoutFormDTO(
    shipping_id="eu",
    email="ada@example.com",
    full_name="Ada Lovelace",
    address_line1="12 Analytical Row",
    city="London",
    postcode="N1 9GU",
    country="UK",
    message="Gift wrap please",
)


class TestSubmitOrderValidation:
    async def test_missing_email(self, make_session, event_network) -> None:
        session = make_session()
        with pytest.raises(ValueError, match="email"):
            await session.submit_order(CheckoutFormDTO(shipping_id="digital"))
        assert session.step is CheckoutStep.DETAILS
        assert event_network.publish_calls == []

    async def test_unknown_shipping_zone(self, make_session) -> None:
        with pytest.raises(ValueError, match="shipping_id"):
            await make_session().submit_order(
                CheckoutFormDTO(shipping_id="mars", email="ada@example.com")
            )

    async def test_physical_zone_needs_address(self, make_session) -> None:
        with pytest.raises(ValueError, match="full_name"):
            await make_session().submit_order(
                CheckoutFormDTO(shipping_id="eu", email="ada@example.com")
            )

    async def test_login_required(self, make_session, event_network) -> None:
        with pytest.raises(AuthenticationRequired):
            await make_session(signer=None).submit_order(DIGITAL_FORM)
        assert event_network.publish_calls == []

    async def test_merchant_without_lightning_address(
        self, make_session, event_network
    ) -> None:
        session = make_session(lightning_address=None)
        notification = await session.submit_order(DIGITAL_FORM)
        assert notification.title == "Payment not available"
        assert notification.level == "error"
        assert session.step is CheckoutStep.DETAILS
        assert event_network.publish_calls == []


async def test_digital_order_gets_lnurl_invoice(
    make_session, event_network, lightning_backend
) -> None:
    session = make_session()

    assert await session.submit_order(DIGITAL_FORM) is None

    assert session.step is CheckoutStep.PAYMENT
    assert session.order.order_id == ORDER_ID
    assert session.order.address is None
    assert len(event_network.published) == 2
    assert session.invoice.bolt11 == "lnbc1pstallinvoice"
    # 25 USD at 50,000 USD/BTC
    assert session.invoice.amount_sats == 50_000
    assert not session.invoice_loading
    (invoice_request,) = lightning_backend.invoice_requests()
    assert invoice_request.url.params["amount"] == "50000000"
    assert invoice_request.url.params["comment"] == f"Order #{ORDER_ID[:8]} - Stall T-shirt"


async def test_physical_order_uses_product_shipping_override(make_session) -> None:
    session = make_session()
    await session.submit_order(PHYSICAL_FORM)

    assert session.order.shipping_cost == 5.0
    assert session.order.address.city == "London"
    assert session.order.message == "Gift wrap please"
    assert session.invoice.amount_sats == 60_000


async def test_publish_failure_stays_on_details(make_session, event_network) -> None:
    event_network.fail_publish(PublishTimeout("no relay answered"))
    session = make_session()

    notification = await session.submit_order(DIGITAL_FORM)

    assert notification.title == "Checkout error"
    assert notification.description == "no relay answered"
    assert session.step is CheckoutStep.DETAILS
    assert session.order is None


async def test_invoice_failure_keeps_payment_step(
    make_session, lightning_backend
) -> None:
    lightning_backend.rate_status = 503
    session = make_session()

    notification = await session.submit_order(DIGITAL_FORM)

    assert notification.title == "Payment setup failed"
    assert notification.description == "Failed to fetch exchange rate"
    assert session.step is CheckoutStep.PAYMENT
    assert session.order is not None
    assert session.invoice is None
    assert not session.invoice_loading

    lightning_backend.rate_status = 200
    assert await session.retry_invoice() is None
    assert session.invoice.amount_sats == 50_000
    assert session.order.order_id == ORDER_ID


async def test_amount_out_of_range_is_reported(make_session, lightning_backend) -> None:
    lightning_backend.pay_params["maxSendable"] = 10_000_000
    session = make_session()

    notification = await session.submit_order(DIGITAL_FORM)

    assert notification.description == "Amount too high. Maximum: 10000 sats"
    assert lightning_backend.invoice_requests() == []


async def test_merchant_issued_invoice(
    make_session, event_network, merchant_signer, buyer_signer
) -> None:
    event_network.add_event(
        await build_dm(
            merchant_signer,
            buyer_signer.pubkey,
            json.dumps(payment_request_payload(ORDER_ID, "lnbc1pmerchant")),
        )
    )
    session = make_session(invoice_source="merchant", lightning_address=None)

    await session.submit_order(DIGITAL_FORM)

    assert session.invoice.bolt11 == "lnbc1pmerchant"
    assert session.invoice.source == "merchant"
    assert session.invoice.amount_sats == 50_000


async def test_merchant_never_answers(make_session, fake_clock) -> None:
    session = make_session(invoice_source="merchant")

    notification = await session.submit_order(DIGITAL_FORM)

    assert notification.title == "Payment setup failed"
    assert "Timeout waiting for payment request" in notification.description
    assert session.step is CheckoutStep.PAYMENT
    assert sum(fake_clock.sleeps) == pytest.approx(30)


async def test_closing_stops_the_merchant_wait(
    make_session, event_network, buyer_signer, fake_clock
) -> None:
    holder = {}

    async def sleep(seconds: float) -> None:
        await fake_clock.sleep(seconds)
        holder["session"].close()

    session = make_session(
        invoice_source="merchant",
        listener=MerchantReplyListener(
            event_network, buyer_signer, clock=fake_clock, sleep=sleep
        ),
    )
    holder["session"] = session

    assert await session.submit_order(DIGITAL_FORM) is None

    assert session.closed
    assert session.invoice is None
    assert not session.invoice_loading
    assert session.notifications == []
    assert len(event_network.query_calls) == 1


async def test_qr_is_rendered_from_upper_case_invoice(make_session) -> None:
    renderer = TestQrRenderer()
    session = make_session(qr_renderer=renderer)

    await session.submit_order(DIGITAL_FORM)

    assert renderer.payloads == ["LNBC1PSTALLINVOICE"]
    assert session.qr_data_url.startswith("data:image/png;base64,")


async def test_qr_failure_keeps_invoice(make_session) -> None:
    session = make_session(qr_renderer=TestQrRenderer(error=RuntimeError("boom")))

    await session.submit_order(DIGITAL_FORM)

    assert session.invoice is not None
    assert session.qr_data_url is None


async def test_stale_qr_is_discarded(make_session) -> None:
    holder = {}

    class ClosingRenderer(TestQrRenderer):
        async def render(self, payload: str) -> str:
            holder["session"].close()
            return await super().render(payload)

    session = make_session(qr_renderer=ClosingRenderer())
    holder["session"] = session

    await session.submit_order(DIGITAL_FORM)

    assert session.qr_data_url is None


async def test_pay_with_in_app_wallet(make_session, event_network) -> None:
    session = make_session(in_app_wallet=TestInAppWallet())
    await session.submit_order(DIGITAL_FORM)

    outcome = await session.pay(PaymentChannel.IN_APP)

    assert outcome.paid
    assert session.step is CheckoutStep.SUCCESS
    assert len(event_network.published) == 3
    assert session.notifications[-1].title == "Payment successful!"
    assert [h.event for h in session.history][-2:] == ["paid", "confirmation_sent"]


async def test_second_payment_during_confirmation_is_rejected(
    make_session, event_network
) -> None:
    wallet = TestInAppWallet()
    session = make_session(in_app_wallet=wallet)
    await session.submit_order(DIGITAL_FORM)
    event_network.publish_delay = 0.2

    first = asyncio.create_task(session.pay(PaymentChannel.IN_APP))
    await asyncio.sleep(0.05)

    assert session.step is CheckoutStep.SUCCESS
    assert session.dispatcher.busy
    with pytest.raises(InvalidCheckoutState):
        await session.pay(PaymentChannel.IN_APP)

    assert (await first).paid
    assert [c for c, _ in wallet.calls].count("send_payment") == 1
    assert not session.dispatcher.busy


async def test_remote_wallet_transport_error_is_a_failed_payment(
    make_session,
) -> None:
    session = make_session(
        remote_wallet=TestRemoteWallet(error=ConnectionError("relay socket reset"))
    )
    await session.submit_order(DIGITAL_FORM)

    outcome = await session.pay(PaymentChannel.REMOTE)

    assert not outcome.paid
    assert outcome.notification.title == "Payment failed"
    assert outcome.notification.description == "relay socket reset"
    assert session.step is CheckoutStep.PAYMENT
    assert not session.dispatcher.busy


async def test_failed_payment_stays_on_payment(make_session) -> None:
    session = make_session(in_app_wallet=TestInAppWallet(error=RuntimeError("no")))
    await session.submit_order(DIGITAL_FORM)

    outcome = await session.pay(PaymentChannel.IN_APP)

    assert not outcome.paid
    assert session.step is CheckoutStep.PAYMENT
    assert session.notifications[-1].title == "Payment cancelled"


async def test_busy_dispatcher_rejects_second_payment(make_session) -> None:
    session = make_session(in_app_wallet=TestInAppWallet())
    await session.submit_order(DIGITAL_FORM)
    session.dispatcher._busy = True

    with pytest.raises(PaymentInProgress):
        await session.pay(PaymentChannel.IN_APP)


async def test_manual_acknowledgement(make_session, event_network) -> None:
    session = make_session()
    await session.submit_order(DIGITAL_FORM)

    session.acknowledge_manual_payment()

    assert session.step is CheckoutStep.SUCCESS
    assert len(event_network.published) == 2


async def test_payment_needs_an_invoice(make_session) -> None:
    with pytest.raises(InvalidCheckoutState):
        await make_session().pay(PaymentChannel.IN_APP)
    with pytest.raises(InvalidCheckoutState):
        make_session().acknowledge_manual_payment()


async def test_closed_session_rejects_actions(make_session) -> None:
    session = make_session()
    session.close()
    with pytest.raises(InvalidCheckoutState):
        await session.submit_order(DIGITAL_FORM)


async def test_merchant_status_marks_success(
    make_session, event_network, merchant_signer, buyer_signer
) -> None:
    session = make_session()
    await session.submit_order(DIGITAL_FORM)
    event_network.add_event(
        await build_dm(
            merchant_signer,
            buyer_signer.pubkey,
            json.dumps(order_status_payload(ORDER_ID, paid=True)),
        )
    )

    status = await session.wait_for_order_status()

    assert status.paid
    assert session.step is CheckoutStep.SUCCESS


async def test_merchant_status_timeout(make_session, fake_clock) -> None:
    session = make_session()
    await session.submit_order(DIGITAL_FORM)

    assert await session.wait_for_order_status() is None
    assert session.notifications[-1].title == "No update yet"
    assert session.step is CheckoutStep.PAYMENT
    assert sum(fake_clock.sleeps) == pytest.approx(120)


async def test_response_lists_payment_channels(make_session) -> None:
    session = make_session(in_app_wallet=TestInAppWallet())
    await session.submit_order(DIGITAL_FORM)

    response = session.to_response()

    assert response.step == "payment"
    assert [c.channel for c in response.channels] == [
        PaymentChannel.IN_APP,
        PaymentChannel.MANUAL,
    ]
    assert response.order.total == 25.0
