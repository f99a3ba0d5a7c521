from __future__ import annotations

import logging
from typing import Optional

from ...domain.checkout.entities import InAppPaymentResult
from ...domain.shared import InAppWalletProtocol

logger = logging.getLogger(__name__)


async def pay_with_in_app_wallet(
    agent: Optional[InAppWalletProtocol], bolt11: str
) -> InAppPaymentResult:
    """Pay ``bolt11`` through the buyer's in-app wallet agent.

    A missing agent is a normal negative result, not an error. Whatever the
    agent reports (user cancellation, routing failure) comes back as
    ``success=False``; nothing is raised to the caller.
    """
    if agent is None:
        return InAppPaymentResult(success=False)

    try:
        await agent.enable()
        result = await agent.send_payment(bolt11)
    except Exception as e:
        logger.warning("In-app wallet payment failed: %s", e)
        return InAppPaymentResult(success=False)

    preimage = result.get("preimage") if isinstance(result, dict) else None
    return InAppPaymentResult(success=True, preimage=preimage)
