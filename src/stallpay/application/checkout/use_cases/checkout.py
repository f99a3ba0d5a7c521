"""Service for checkout session operations."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from ....domain.checkout.session_repository import CheckoutSessionRepository
from ..dtos import (
    CheckoutFormDTO,
    CheckoutSessionResponseDTO,
    CreateCheckoutSessionDTO,
    OrderStatusResponseDTO,
    PaymentOutcomeDTO,
)
from .checkout_session import CheckoutSession, CheckoutStep
from .payment_dispatcher import PaymentChannel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[CreateCheckoutSessionDTO], CheckoutSession]


class CheckoutService:
    """Opens checkout sessions and routes buyer actions to them.

    Operations on an unknown session id return ``None``. A session that
    reaches the success step is closed and dropped once its final state has
    been returned to the buyer.
    """

    def __init__(
        self,
        session_repository: CheckoutSessionRepository,
        session_factory: SessionFactory,
    ):
        self.session_repository = session_repository
        self.session_factory = session_factory

    async def create_session(
        self, dto: CreateCheckoutSessionDTO
    ) -> CheckoutSessionResponseDTO:
        session = self.session_factory(dto)
        await self.session_repository.add(session)
        logger.info(
            "Opened checkout session %s for product %s",
            session.session_id,
            dto.product.id,
        )
        return session.to_response()

    async def get_session(self, session_id: str) -> Optional[CheckoutSessionResponseDTO]:
        session = await self.session_repository.get_by_id(session_id)
        return session.to_response() if session else None

    async def get_all_sessions(self) -> List[CheckoutSessionResponseDTO]:
        sessions = await self.session_repository.get_all()
        return [session.to_response() for session in sessions]

    async def submit_order(
        self, session_id: str, form: CheckoutFormDTO
    ) -> Optional[CheckoutSessionResponseDTO]:
        session = await self.session_repository.get_by_id(session_id)
        if not session:
            return None
        await session.submit_order(form)
        return session.to_response()

    async def retry_invoice(
        self, session_id: str
    ) -> Optional[CheckoutSessionResponseDTO]:
        session = await self.session_repository.get_by_id(session_id)
        if not session:
            return None
        await session.retry_invoice()
        return session.to_response()

    async def pay(
        self, session_id: str, channel: PaymentChannel
    ) -> Optional[PaymentOutcomeDTO]:
        session = await self.session_repository.get_by_id(session_id)
        if not session:
            return None
        outcome = await session.pay(channel)
        await self._discard_if_complete(session)
        return PaymentOutcomeDTO(**outcome.model_dump(exclude={"notification"}))

    async def acknowledge_manual_payment(
        self, session_id: str
    ) -> Optional[CheckoutSessionResponseDTO]:
        session = await self.session_repository.get_by_id(session_id)
        if not session:
            return None
        session.acknowledge_manual_payment()
        response = session.to_response()
        await self._discard_if_complete(session)
        return response

    async def wait_for_order_status(
        self, session_id: str
    ) -> Optional[OrderStatusResponseDTO]:
        """Block until the merchant reports on the order.

        Raises:
            LookupError: If the merchant sent nothing before the deadline.
        """
        session = await self.session_repository.get_by_id(session_id)
        if not session:
            return None
        status = await session.wait_for_order_status()
        if status is None:
            raise LookupError("No status update from the merchant yet")
        await self._discard_if_complete(session)
        return OrderStatusResponseDTO(
            order_id=status.id,
            paid=status.paid,
            shipped=status.shipped,
            message=status.message,
        )

    async def close_session(self, session_id: str) -> bool:
        session = await self.session_repository.get_by_id(session_id)
        if not session:
            return False
        session.close()
        return await self.session_repository.remove(session_id)

    async def _discard_if_complete(self, session: CheckoutSession) -> None:
        if session.step is not CheckoutStep.SUCCESS:
            return
        session.close()
        await self.session_repository.remove(session.session_id)
        logger.info("Dropped completed checkout session %s", session.session_id)
