"""Use case: the checkout dialog as a state machine for one buyer and one product.

Steps move ``details -> payment -> success``. Failures never raise out of the
buyer-facing operations unless the caller must act (log in, wait for the
running payment); they become notifications instead.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Literal, Optional

from ....domain.checkout.entities import (
    Contact,
    HistoryEntry,
    Invoice,
    Notification,
    Order,
    Product,
    ShippingAddress,
    ShippingZone,
)
from ....domain.errors import (
    AuthenticationRequired,
    CheckoutCancelled,
    CheckoutError,
    ConversionError,
    InvalidCheckoutState,
    ListenerTimeout,
    PaymentNotAvailable,
)
from ....domain.shared import QrRendererProtocol
from ....infrastructure.lightning.exchange_rate import ExchangeRateClient
from ....infrastructure.lightning.lnurl_client import LnurlClient
from ...shared.checkout_messages import OrderStatusMessage
from ..dtos import CheckoutFormDTO, CheckoutSessionResponseDTO
from ..order_codec import (
    build_order,
    generate_order_id,
    is_digital_shipping,
    merge_shipping_zones,
)
from ..validators import validate_checkout_form
from .order_submission import OrderSubmissionService
from .payment_dispatcher import PaymentChannel, PaymentDispatcher, PaymentOutcome
from .payment_listener import MerchantReplyListener

logger = logging.getLogger(__name__)


class CheckoutStep(str, Enum):
    DETAILS = "details"
    PAYMENT = "payment"
    SUCCESS = "success"


class CheckoutSession:
    """Drives order submission, invoice preparation and payment for one dialog.

    The order id is minted on the first submission attempt and reused by every
    retry, so a merchant never sees two different ids for the same purchase.
    Invoice and QR results carry the generation they were started under and
    are dropped when the session was closed or the invoice replaced meanwhile.
    """

    def __init__(
        self,
        *,
        merchant_pubkey: str,
        product: Product,
        shipping_zones: list[ShippingZone],
        submission: OrderSubmissionService,
        listener: MerchantReplyListener,
        dispatcher: PaymentDispatcher,
        exchange_rate: ExchangeRateClient,
        lnurl: LnurlClient,
        lightning_address: Optional[str] = None,
        invoice_source: Literal["lnurl", "merchant"] = "lnurl",
        qr_renderer: Optional[QrRendererProtocol] = None,
        payment_request_timeout: float = 30.0,
        payment_request_poll_interval: float = 2.0,
        order_status_timeout: float = 120.0,
        order_status_poll_interval: float = 3.0,
        id_factory: Callable[[], str] = generate_order_id,
    ) -> None:
        self.session_id = uuid.uuid4().hex
        self.created_at = datetime.now(timezone.utc)
        self.merchant_pubkey = merchant_pubkey
        self.product = product
        self.shipping_zones = merge_shipping_zones(shipping_zones, product.shipping)
        self.submission = submission
        self.listener = listener
        self.dispatcher = dispatcher
        self.exchange_rate = exchange_rate
        self.lnurl = lnurl
        self.lightning_address = lightning_address
        self.invoice_source = invoice_source
        self.qr_renderer = qr_renderer
        self.payment_request_timeout = payment_request_timeout
        self.payment_request_poll_interval = payment_request_poll_interval
        self.order_status_timeout = order_status_timeout
        self.order_status_poll_interval = order_status_poll_interval
        self._id_factory = id_factory

        self.step = CheckoutStep.DETAILS
        self.order: Optional[Order] = None
        self.invoice: Optional[Invoice] = None
        self.invoice_loading = False
        self.qr_data_url: Optional[str] = None
        self.notifications: list[Notification] = []
        self.history: list[HistoryEntry] = []
        self._pending_order_id: Optional[str] = None
        self._alive = True
        self._generation = 0

    # -- liveness -----------------------------------------------------------

    def is_alive(self) -> bool:
        return self._alive

    @property
    def closed(self) -> bool:
        return not self._alive

    def close(self) -> None:
        """Discard the session; running poll loops stop on their next round."""
        if not self._alive:
            return
        self._alive = False
        self._generation += 1
        self._record("closed")
        logger.info("Checkout session %s closed", self.session_id)

    # -- helpers ------------------------------------------------------------

    def _record(self, event: str, detail: str = "") -> None:
        self.history.append(HistoryEntry(event=event, detail=detail))

    def _notify(
        self, level: Literal["info", "error"], title: str, description: str
    ) -> Notification:
        notification = Notification(level=level, title=title, description=description)
        self.notifications.append(notification)
        return notification

    def _require_open(self) -> None:
        if not self._alive:
            raise InvalidCheckoutState("Checkout session is closed")

    def _require_step(self, step: CheckoutStep) -> None:
        self._require_open()
        if self.step is not step:
            raise InvalidCheckoutState(
                f"Operation needs the {step.value} step, session is at {self.step.value}"
            )

    def _find_zone(self, shipping_id: str) -> Optional[ShippingZone]:
        for zone in self.shipping_zones:
            if zone.id == shipping_id:
                return zone
        return None

    # -- details step -------------------------------------------------------

    async def submit_order(self, form: CheckoutFormDTO) -> Optional[Notification]:
        """Validate the form, publish the order and prepare its invoice.

        Returns the notification produced by the attempt, if any.

        Raises:
            InvalidCheckoutState: If the session is closed or past the details step.
            AuthenticationRequired: If no signer is active.
            ValueError: If required form fields are missing.
        """
        self._require_step(CheckoutStep.DETAILS)

        zone = self._find_zone(form.shipping_id)
        is_digital = zone is not None and is_digital_shipping(zone)
        validate_checkout_form(
            shipping_id=form.shipping_id if zone is not None else None,
            email=form.email,
            is_digital=is_digital,
            full_name=form.full_name,
            address_line1=form.address_line1,
            city=form.city,
            postcode=form.postcode,
            country=form.country,
        )
        assert zone is not None

        signer = self.submission.signer
        if signer is None:
            raise AuthenticationRequired("You must be logged in to place an order")

        if self.invoice_source == "lnurl" and not self.lightning_address:
            return self._notify(
                "error",
                "Payment not available",
                "The merchant has not set up a Lightning address.",
            )

        if self._pending_order_id is None:
            self._pending_order_id = self._id_factory()
        order = build_order(
            order_id=self._pending_order_id,
            merchant_pubkey=self.merchant_pubkey,
            product=self.product,
            zone=zone,
            quantity=form.quantity,
            contact=Contact(
                nostr=signer.pubkey, email=form.email, phone=form.phone or None
            ),
            address=None
            if is_digital
            else ShippingAddress(
                full_name=form.full_name,
                address_line1=form.address_line1,
                address_line2=form.address_line2 or None,
                city=form.city,
                postcode=form.postcode,
                country=form.country,
            ),
            message=form.message,
        )

        try:
            receipt = await self.submission.submit(order)
        except AuthenticationRequired:
            raise
        except CheckoutError as e:
            logger.warning("Order %s was not delivered: %s", order.order_id, e)
            self._record("order_failed", str(e))
            return self._notify(
                "error", "Checkout error", str(e) or "Something went wrong"
            )

        if not self._alive:
            logger.info("Session closed while order %s was being sent", order.order_id)
            return None

        self.order = order
        self.step = CheckoutStep.PAYMENT
        self._record("order_submitted", order.order_id)
        for failure in receipt.failures:
            self._record("order_envelope_failed", failure)
        return await self._prepare_invoice()

    # -- payment step -------------------------------------------------------

    async def _obtain_invoice(self, order: Order) -> Invoice:
        if self.invoice_source == "merchant":
            request = await self.listener.wait_for_payment_request(
                self.merchant_pubkey,
                order.order_id,
                timeout=self.payment_request_timeout,
                poll_interval=self.payment_request_poll_interval,
                is_alive=self.is_alive,
            )
            bolt11 = request.lightning_invoice()
            assert bolt11 is not None
            try:
                amount_sats: Optional[int] = await self.exchange_rate.fiat_to_sats(
                    order.total, order.currency
                )
            except ConversionError as e:
                logger.warning("Showing merchant invoice without a sats amount: %s", e)
                amount_sats = None
            return Invoice(bolt11=bolt11, amount_sats=amount_sats, source="merchant")

        if not self.lightning_address:
            raise PaymentNotAvailable("The merchant has not set up a Lightning address.")
        sats = await self.exchange_rate.fiat_to_sats(order.total, order.currency)
        params = await self.lnurl.fetch_pay_params(self.lightning_address)
        return await self.lnurl.request_invoice(
            params,
            sats,
            comment=f"Order #{order.order_id[:8]} - {order.product_name}",
        )

    async def _prepare_invoice(self) -> Optional[Notification]:
        assert self.order is not None
        self._generation += 1
        generation = self._generation
        self.invoice = None
        self.qr_data_url = None
        self.invoice_loading = True
        try:
            invoice = await self._obtain_invoice(self.order)
        except CheckoutCancelled:
            self.invoice_loading = False
            logger.info("Invoice preparation for %s cancelled", self.order.order_id)
            return None
        except CheckoutError as e:
            if generation != self._generation:
                return None
            self.invoice_loading = False
            logger.warning("Invoice setup for %s failed: %s", self.order.order_id, e)
            self._record("invoice_failed", str(e))
            return self._notify(
                "error",
                "Payment setup failed",
                str(e) or "Could not generate invoice",
            )

        if generation != self._generation:
            logger.debug("Discarding stale invoice for %s", self.order.order_id)
            return None
        self.invoice = invoice
        self.invoice_loading = False
        self._record("invoice_ready", f"{invoice.source}: {invoice.amount_sats} sats")
        await self._render_qr(invoice, generation)
        return None

    async def _render_qr(self, invoice: Invoice, generation: int) -> None:
        if self.qr_renderer is None:
            return
        try:
            data_url = await self.qr_renderer.render(invoice.qr_payload)
        except Exception as e:
            logger.warning("Failed to generate QR code: %s", e)
            return
        if generation == self._generation:
            self.qr_data_url = data_url

    async def retry_invoice(self) -> Optional[Notification]:
        """Prepare a fresh invoice for the already submitted order."""
        self._require_step(CheckoutStep.PAYMENT)
        self._record("invoice_retry")
        return await self._prepare_invoice()

    async def pay(self, channel: PaymentChannel) -> PaymentOutcome:
        """Pay the current invoice through ``channel``.

        Raises:
            InvalidCheckoutState: If there is no invoice to pay.
            PaymentInProgress: If another payment is still running.
        """
        self._require_step(CheckoutStep.PAYMENT)
        if self.invoice is None or self.order is None:
            raise InvalidCheckoutState("No invoice to pay yet")

        # Leaves the payment step before the confirmation DM is awaited.
        def mark_paid(outcome: PaymentOutcome) -> None:
            self.step = CheckoutStep.SUCCESS
            self._record("paid", channel.value)

        outcome = await self.dispatcher.pay(
            channel, self.invoice, self.order, on_paid=mark_paid
        )
        if outcome.notification is not None:
            self.notifications.append(outcome.notification)
        if not outcome.paid:
            self._record("payment_failed", channel.value)
            return outcome

        if outcome.confirmation_error:
            self._record("confirmation_failed", outcome.confirmation_error)
        else:
            self._record("confirmation_sent", outcome.confirmation_event_id or "")
        return outcome

    def acknowledge_manual_payment(self) -> None:
        """The buyer states they paid the invoice with an outside wallet."""
        self._require_step(CheckoutStep.PAYMENT)
        if self.order is None:
            raise InvalidCheckoutState("No order has been submitted")
        self.step = CheckoutStep.SUCCESS
        self._record("manual_payment_acknowledged", self.order.order_id)

    async def wait_for_order_status(self) -> Optional[OrderStatusMessage]:
        """Wait for the merchant's status update for the submitted order.

        A status reporting ``paid`` moves a session still on the payment step
        to success. Returns ``None`` when nothing arrived in time.
        """
        self._require_open()
        if self.order is None:
            raise InvalidCheckoutState("No order has been submitted")
        try:
            status = await self.listener.wait_for_order_status(
                self.merchant_pubkey,
                self.order.order_id,
                timeout=self.order_status_timeout,
                poll_interval=self.order_status_poll_interval,
                is_alive=self.is_alive,
            )
        except ListenerTimeout as e:
            self._record("status_timeout", str(e))
            self._notify(
                "info",
                "No update yet",
                "The merchant has not confirmed the payment yet.",
            )
            return None

        self._record("status_received", f"paid={status.paid} shipped={status.shipped}")
        if status.paid and self.step is CheckoutStep.PAYMENT:
            self.step = CheckoutStep.SUCCESS
        return status

    # -- views --------------------------------------------------------------

    def to_response(self) -> CheckoutSessionResponseDTO:
        return CheckoutSessionResponseDTO(
            session_id=self.session_id,
            step=self.step.value,
            closed=self.closed,
            product=self.product,
            shipping_zones=self.shipping_zones,
            order=self.order,
            invoice=self.invoice,
            invoice_loading=self.invoice_loading,
            qr_data_url=self.qr_data_url,
            channels=self.dispatcher.available_channels(self.invoice)
            if self.invoice is not None
            else [],
            paying=self.dispatcher.busy,
            notifications=list(self.notifications),
            history=list(self.history),
            created_at=self.created_at,
        )
