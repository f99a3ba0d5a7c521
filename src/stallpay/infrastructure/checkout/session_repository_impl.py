"""Process-local checkout session repository.

Sessions hold live tasks and callbacks, so they are kept in memory and never
persisted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from ...domain.checkout.session_repository import CheckoutSessionRepository

if TYPE_CHECKING:
    from ...application.checkout.use_cases.checkout_session import CheckoutSession


class InMemoryCheckoutSessionRepository(CheckoutSessionRepository):
    def __init__(self) -> None:
        self._sessions: dict[str, "CheckoutSession"] = {}

    async def add(self, session: "CheckoutSession") -> "CheckoutSession":
        self._sessions[session.session_id] = session
        return session

    async def get_by_id(self, session_id: str) -> Optional["CheckoutSession"]:
        return self._sessions.get(session_id)

    async def get_all(self) -> List["CheckoutSession"]:
        return sorted(
            self._sessions.values(), key=lambda s: s.created_at, reverse=True
        )

    async def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None
