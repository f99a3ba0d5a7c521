"""Builds the structured and human-readable representations of an order."""

from __future__ import annotations

import secrets
import string
import time
from typing import Iterable, Optional

from ...domain.checkout.entities import (
    Contact,
    Order,
    Product,
    ProductShipping,
    ShippingAddress,
    ShippingZone,
)
from ..shared.checkout_messages import (
    OrderContact,
    OrderItem,
    OrderMessage,
)

BASE36_ALPHABET = string.digits + string.ascii_lowercase
DIGITAL_ZONE_KEYWORDS = ("digital", "download", "email", "online", "free")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_order_id(now_ms: Optional[int] = None) -> str:
    """``{base36 ms timestamp}-{6 random base36 chars}``.

    Uniqueness is probabilistic: two ids minted in the same millisecond
    collide with probability 36**-6.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(6))
    return f"{_to_base36(now_ms)}-{suffix}"


def format_shipping_address(address: ShippingAddress) -> str:
    lines = [
        address.full_name,
        address.address_line1,
        address.address_line2,
        f"{address.city}, {address.postcode}",
        address.country,
    ]
    return "\n".join(line for line in lines if line)


def is_digital_shipping(zone: ShippingZone) -> bool:
    """Zero-cost zones and zones named like a digital delivery skip the address.

    This conflates free shipping with digital delivery; see DESIGN.md.
    """
    if zone.cost == 0:
        return True
    name = (zone.name or "").lower()
    return any(keyword in name for keyword in DIGITAL_ZONE_KEYWORDS)


def merge_shipping_zones(
    zones: Iterable[ShippingZone], product_shipping: Iterable[ProductShipping]
) -> list[ShippingZone]:
    """Apply product-level cost overrides to the stall's shipping zones."""
    overrides = {item.id: item.cost for item in product_shipping}
    return [
        zone.model_copy(update={"cost": overrides.get(zone.id, zone.cost)})
        for zone in zones
    ]


def build_order(
    *,
    order_id: str,
    merchant_pubkey: str,
    product: Product,
    zone: ShippingZone,
    quantity: int,
    contact: Contact,
    address: Optional[ShippingAddress] = None,
    message: Optional[str] = None,
) -> Order:
    """Assemble an order; the address is dropped for digital shipping zones."""
    return Order(
        order_id=order_id,
        merchant_pubkey=merchant_pubkey,
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        shipping_id=zone.id,
        shipping_zone_name=zone.name or "Shipping",
        price=product.price,
        shipping_cost=zone.cost,
        currency=product.currency,
        address=None if is_digital_shipping(zone) else address,
        contact=contact,
        message=message or None,
    )


def build_order_message(order: Order) -> OrderMessage:
    """Structured order payload for merchant-side automation."""
    return OrderMessage(
        id=order.order_id,
        name=order.address.full_name if order.address else None,
        address=format_shipping_address(order.address) if order.address else None,
        message=order.message,
        contact=OrderContact(
            nostr=order.contact.nostr,
            phone=order.contact.phone,
            email=order.contact.email,
        ),
        items=[OrderItem(product_id=order.product_id, quantity=order.quantity)],
        shipping_id=order.shipping_id,
    )


def format_fiat(value: float) -> str:
    return f"{value:,.2f}".rstrip("0").rstrip(".")


def build_order_summary(order: Order) -> str:
    """Human-readable order text for merchants reading DMs in a generic client."""
    currency = order.currency
    shipping = (
        "Free"
        if order.shipping_cost == 0
        else f"{format_fiat(order.shipping_cost)} {currency}"
    )
    lines = [
        f"🛒 NEW ORDER #{order.short_id}",
        "",
        f"📦 Product: {order.product_name}",
        f"   Quantity: {order.quantity}",
        f"   Price: {format_fiat(order.price)} {currency}",
        "",
        f"🚚 Shipping: {order.shipping_zone_name}",
        f"   Cost: {shipping}",
        "",
        f"💰 TOTAL: {format_fiat(order.total)} {currency}",
        "",
    ]

    if order.address is not None:
        lines.append("📍 Shipping Address:")
        lines.extend(
            f"   {line}" for line in format_shipping_address(order.address).split("\n")
        )
        lines.append("")

    lines.append("📧 Contact:")
    if order.contact.email:
        lines.append(f"   Email: {order.contact.email}")
    if order.contact.phone:
        lines.append(f"   Phone: {order.contact.phone}")
    lines.append("")

    if order.message:
        lines.extend(["💬 Message from customer:", f"   {order.message}", ""])

    lines.extend(
        ["---", f"Order ID: {order.order_id}", f"Product ID: {order.product_id}"]
    )
    return "\n".join(lines)


def build_payment_confirmation(order: Order, amount_sats: Optional[int]) -> str:
    sats = f"{amount_sats:,} sats" if amount_sats is not None else "unknown sats"
    return "\n".join(
        [
            "✅ PAYMENT RECEIVED",
            "",
            f"Order #{order.short_id} has been paid!",
            "",
            f"📦 Product: {order.product_name}",
            f"💰 Amount: {sats} ({format_fiat(order.total)} {order.currency})",
            "",
            "Please process this order. Thank you!",
        ]
    )
