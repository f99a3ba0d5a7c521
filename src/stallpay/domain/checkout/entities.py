"""Checkout domain entities: orders, shipping, invoices and payment results."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field


class ShippingAddress(BaseModel):
    """Postal address collected for physical shipments."""

    model_config = ConfigDict(frozen=True)

    full_name: str = Field(..., min_length=1)
    address_line1: str = Field(..., min_length=1)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=1)
    postcode: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class Contact(BaseModel):
    """Buyer identity reference plus optional out-of-band contact details."""

    model_config = ConfigDict(frozen=True)

    nostr: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class ShippingZone(BaseModel):
    """A stall shipping zone (NIP-15 stall ``shipping`` entry)."""

    id: str
    name: Optional[str] = None
    cost: float = Field(..., ge=0)
    countries: list[str] = Field(default_factory=list)


class ProductShipping(BaseModel):
    """Product-level cost override for a stall shipping zone."""

    id: str
    cost: float = Field(..., ge=0)


class Product(BaseModel):
    id: str
    name: str
    price: float = Field(..., ge=0)
    currency: str = Field(..., min_length=1)
    shipping: list[ProductShipping] = Field(default_factory=list)


class Order(BaseModel):
    """A buyer's intent to purchase; immutable once built."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    merchant_pubkey: str
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    shipping_id: str
    shipping_zone_name: str
    price: float = Field(..., ge=0)
    shipping_cost: float = Field(..., ge=0)
    currency: str
    address: Optional[ShippingAddress] = None
    contact: Contact
    message: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return self.price * self.quantity + self.shipping_cost

    @property
    def is_digital(self) -> bool:
        return self.address is None

    @property
    def short_id(self) -> str:
        return self.order_id[:8].upper()


class LnurlPayParams(BaseModel):
    """LUD-06 pay request parameters (amounts in millisats)."""

    model_config = ConfigDict(populate_by_name=True)

    callback: str
    min_sendable: int = Field(..., alias="minSendable", ge=0)
    max_sendable: int = Field(..., alias="maxSendable", ge=0)
    metadata: str = ""
    tag: str = "payRequest"
    comment_allowed: Optional[int] = Field(None, alias="commentAllowed")


class SuccessAction(BaseModel):
    tag: str
    message: Optional[str] = None
    url: Optional[str] = None


class Invoice(BaseModel):
    """A bolt11 payment request and the amount it was issued for."""

    model_config = ConfigDict(frozen=True)

    bolt11: str = Field(..., min_length=1)
    amount_sats: Optional[int] = Field(None, ge=0)
    min_sendable: Optional[int] = None
    max_sendable: Optional[int] = None
    source: Literal["lnurl", "merchant"] = "lnurl"
    success_action: Optional[SuccessAction] = None

    @property
    def lightning_uri(self) -> str:
        return f"lightning:{self.bolt11}"

    @property
    def qr_payload(self) -> str:
        # Upper-case bolt11 encodes in the denser alphanumeric QR mode.
        return self.bolt11.upper()


class InAppPaymentResult(BaseModel):
    success: bool
    preimage: Optional[str] = None


class WalletPayment(BaseModel):
    """Settlement result reported by a remote wallet."""

    preimage: Optional[str] = None
    fees_paid_msat: Optional[int] = None


class Notification(BaseModel):
    """User-facing message produced by a checkout action."""

    level: Literal["info", "error"]
    title: str
    description: str


class HistoryEntry(BaseModel):
    """One line of a session's order history."""

    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event: str
    detail: str = ""
