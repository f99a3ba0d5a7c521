"""Checkout session repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from ...application.checkout.use_cases.checkout_session import CheckoutSession


class CheckoutSessionRepository(ABC):
    """Abstract repository for live checkout sessions."""

    @abstractmethod
    async def add(self, session: "CheckoutSession") -> "CheckoutSession":
        """Register a new session."""
        pass

    @abstractmethod
    async def get_by_id(self, session_id: str) -> Optional["CheckoutSession"]:
        """Get session by ID."""
        pass

    @abstractmethod
    async def get_all(self) -> List["CheckoutSession"]:
        """Get every registered session, newest first."""
        pass

    @abstractmethod
    async def remove(self, session_id: str) -> bool:
        """Forget a session."""
        pass
