"""Pure validation functions for checkout forms and invoice amounts.

These functions contain business rules that can be tested in isolation
without dependencies on the network or wallets.
"""

from __future__ import annotations

import math
from typing import Optional

from ...domain.errors import AmountOutOfRange


def validate_sendable_amount(
    amount_sats: int,
    min_sendable: int,
    max_sendable: int,
) -> int:
    """Check an amount against LNURL-pay bounds. Pure function.

    Args:
        amount_sats: Amount the buyer must pay, in satoshis
        min_sendable: Lower bound in millisats (inclusive)
        max_sendable: Upper bound in millisats (inclusive)

    Returns:
        The amount in millisats.

    Raises:
        AmountOutOfRange: If the amount falls outside the bounds; the message
            states the violated bound in sats.
    """
    amount_msat = amount_sats * 1000
    if amount_msat < min_sendable:
        raise AmountOutOfRange(
            f"Amount too low. Minimum: {math.ceil(min_sendable / 1000)} sats"
        )
    if amount_msat > max_sendable:
        raise AmountOutOfRange(
            f"Amount too high. Maximum: {math.floor(max_sendable / 1000)} sats"
        )
    return amount_msat


def comment_fits(comment: Optional[str], comment_allowed: Optional[int]) -> bool:
    """Whether ``comment`` may be attached to an LNURL-pay callback."""
    if not comment or not comment_allowed:
        return False
    return len(comment) <= comment_allowed


def missing_checkout_fields(
    *,
    shipping_id: Optional[str],
    email: Optional[str],
    is_digital: bool,
    full_name: Optional[str] = None,
    address_line1: Optional[str] = None,
    city: Optional[str] = None,
    postcode: Optional[str] = None,
    country: Optional[str] = None,
) -> list[str]:
    """Return the names of required fields left empty.

    Digital shipments only need a shipping zone and an email; physical ones
    also need every mandatory address field.
    """
    required: dict[str, Optional[str]] = {"shipping_id": shipping_id, "email": email}
    if not is_digital:
        required.update(
            full_name=full_name,
            address_line1=address_line1,
            city=city,
            postcode=postcode,
            country=country,
        )
    return [name for name, value in required.items() if not value]


def validate_checkout_form(
    *,
    shipping_id: Optional[str],
    email: Optional[str],
    is_digital: bool,
    full_name: Optional[str] = None,
    address_line1: Optional[str] = None,
    city: Optional[str] = None,
    postcode: Optional[str] = None,
    country: Optional[str] = None,
) -> None:
    """Raise ValueError naming every required field left empty."""
    missing = missing_checkout_fields(
        shipping_id=shipping_id,
        email=email,
        is_digital=is_digital,
        full_name=full_name,
        address_line1=address_line1,
        city=city,
        postcode=postcode,
        country=country,
    )
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
