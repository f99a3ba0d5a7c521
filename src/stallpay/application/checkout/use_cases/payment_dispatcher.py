"""Use case: execute a payment for an invoice through one of the buyer's channels."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel

from ....domain.checkout.entities import Invoice, Notification, Order
from ....domain.errors import CheckoutError, PaymentInProgress
from ....domain.shared import InAppWalletProtocol, RemoteWalletProtocol
from ....infrastructure.lightning.in_app_wallet import pay_with_in_app_wallet
from ..order_codec import build_payment_confirmation
from .order_submission import OrderSubmissionService

logger = logging.getLogger(__name__)


class PaymentChannel(str, Enum):
    REMOTE = "remote"
    IN_APP = "in_app"
    MANUAL = "manual"


class ChannelOffer(BaseModel):
    channel: PaymentChannel
    label: str
    primary: bool = False
    lightning_uri: Optional[str] = None
    qr_payload: Optional[str] = None


class PaymentOutcome(BaseModel):
    """Result of one payment attempt."""

    channel: PaymentChannel
    paid: bool
    preimage: Optional[str] = None
    notification: Optional[Notification] = None
    confirmation_event_id: Optional[str] = None
    confirmation_error: Optional[str] = None


class PaymentDispatcher:
    """Offers the available payment channels and runs one payment at a time.

    A successful payment triggers a best-effort confirmation DM to the
    merchant. Failing to deliver that DM never reverts the paid state.
    """

    def __init__(
        self,
        submission: OrderSubmissionService,
        *,
        remote_wallet: Optional[RemoteWalletProtocol] = None,
        remote_connection: Any = None,
        in_app_wallet: Optional[InAppWalletProtocol] = None,
    ) -> None:
        self.submission = submission
        self.remote_wallet = remote_wallet
        self.remote_connection = remote_connection
        self.in_app_wallet = in_app_wallet
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def remote_connected(self) -> bool:
        return self.remote_wallet is not None and self.remote_connection is not None

    def available_channels(self, invoice: Invoice) -> list[ChannelOffer]:
        """Channels in priority order; the manual hand-off is always offered."""
        offers: list[ChannelOffer] = []
        if self.remote_connected:
            offers.append(
                ChannelOffer(
                    channel=PaymentChannel.REMOTE,
                    label="Pay with connected wallet",
                    primary=True,
                )
            )
        if self.in_app_wallet is not None:
            offers.append(
                ChannelOffer(
                    channel=PaymentChannel.IN_APP,
                    label="Pay with browser wallet",
                    primary=not offers,
                )
            )
        offers.append(
            ChannelOffer(
                channel=PaymentChannel.MANUAL,
                label="Pay with any Lightning wallet",
                primary=not offers,
                lightning_uri=invoice.lightning_uri,
                qr_payload=invoice.qr_payload,
            )
        )
        return offers

    async def pay(
        self,
        channel: PaymentChannel,
        invoice: Invoice,
        order: Order,
        *,
        on_paid: Optional[Callable[[PaymentOutcome], None]] = None,
    ) -> PaymentOutcome:
        """Pay ``invoice`` through ``channel``.

        ``on_paid`` runs as soon as the invoice is settled, before the
        confirmation DM goes out. The dispatcher stays busy until that DM is
        published or has failed.

        Raises:
            PaymentInProgress: If another payment is still in flight.
            ValueError: If ``channel`` is not currently available.
        """
        if self._busy:
            raise PaymentInProgress("A payment is already in progress")
        self._busy = True
        try:
            if channel is PaymentChannel.REMOTE:
                outcome = await self._pay_remote(invoice)
            elif channel is PaymentChannel.IN_APP:
                outcome = await self._pay_in_app(invoice)
            else:
                raise ValueError(
                    "Manual payments are confirmed with acknowledge_manual_payment"
                )

            if outcome.paid:
                logger.info("Order %s paid via %s", order.order_id, channel.value)
                if on_paid is not None:
                    on_paid(outcome)
                await self._confirm(outcome, order, invoice)
                outcome.notification = Notification(
                    level="info",
                    title="Payment successful!",
                    description=(
                        "Your order has been paid. "
                        "The merchant will process it shortly."
                    ),
                )
        finally:
            self._busy = False
        return outcome

    async def _pay_remote(self, invoice: Invoice) -> PaymentOutcome:
        if not self.remote_connected:
            raise ValueError("No remote wallet is connected")
        assert self.remote_wallet is not None
        try:
            payment = await self.remote_wallet.send_payment(
                self.remote_connection, invoice.bolt11
            )
        except CheckoutError as e:
            logger.warning("Remote wallet payment failed: %s", e)
            return self._remote_failure(e)
        except Exception as e:
            logger.exception("Remote wallet raised an unexpected error")
            return self._remote_failure(e)
        return PaymentOutcome(
            channel=PaymentChannel.REMOTE,
            paid=True,
            preimage=payment.preimage,
        )

    def _remote_failure(self, e: Exception) -> PaymentOutcome:
        return PaymentOutcome(
            channel=PaymentChannel.REMOTE,
            paid=False,
            notification=Notification(
                level="error",
                title="Payment failed",
                description=str(e) or "Could not complete payment",
            ),
        )

    async def _pay_in_app(self, invoice: Invoice) -> PaymentOutcome:
        if self.in_app_wallet is None:
            raise ValueError("No in-app wallet is available")
        result = await pay_with_in_app_wallet(self.in_app_wallet, invoice.bolt11)
        if not result.success:
            return PaymentOutcome(
                channel=PaymentChannel.IN_APP,
                paid=False,
                notification=Notification(
                    level="info",
                    title="Payment cancelled",
                    description=(
                        "You can still pay by copying the invoice to your "
                        "Lightning wallet."
                    ),
                ),
            )
        return PaymentOutcome(
            channel=PaymentChannel.IN_APP,
            paid=True,
            preimage=result.preimage,
        )

    async def _confirm(
        self, outcome: PaymentOutcome, order: Order, invoice: Invoice
    ) -> None:
        try:
            event = await self.submission.send_direct_message(
                order.merchant_pubkey,
                build_payment_confirmation(order, invoice.amount_sats),
            )
        except CheckoutError as e:
            logger.warning(
                "Order %s paid but the confirmation DM failed: %s", order.order_id, e
            )
            outcome.confirmation_error = str(e)
            return
        outcome.confirmation_event_id = event.id

