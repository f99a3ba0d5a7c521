"""Data Transfer Objects for the checkout application layer."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ...domain.checkout.entities import (
    HistoryEntry,
    Invoice,
    Notification,
    Order,
    Product,
    ShippingZone,
)
from .use_cases.payment_dispatcher import ChannelOffer, PaymentChannel


class CreateCheckoutSessionDTO(BaseModel):
    """DTO for opening a checkout dialog on one product."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product": {
                    "id": "tee-01",
                    "name": "Stall T-shirt",
                    "price": 25,
                    "currency": "USD",
                },
                "shipping_zones": [
                    {"id": "digital", "name": "Digital delivery", "cost": 0},
                    {"id": "eu", "name": "Europe", "cost": 7.5, "countries": ["DE"]},
                ],
            }
        }
    )

    product: Product
    shipping_zones: list[ShippingZone] = Field(..., min_length=1)
    merchant_pubkey: Optional[str] = Field(None, pattern=r"^[0-9a-fA-F]{64}$")
    lightning_address: Optional[str] = None


class CheckoutFormDTO(BaseModel):
    """The buyer's answers on the details step.

    Fields are optional here; which of them are required depends on the
    selected shipping zone and is checked by the session.
    """

    shipping_id: str = ""
    quantity: int = Field(1, ge=1)
    full_name: str = ""
    address_line1: str = ""
    address_line2: str = ""
    city: str = ""
    postcode: str = ""
    country: str = ""
    email: Optional[EmailStr] = None
    phone: str = ""
    message: str = Field("", max_length=2000)


class PaymentOutcomeDTO(BaseModel):
    channel: PaymentChannel
    paid: bool
    preimage: Optional[str] = None
    confirmation_event_id: Optional[str] = None
    confirmation_error: Optional[str] = None


class OrderStatusResponseDTO(BaseModel):
    order_id: str
    paid: bool
    shipped: bool
    message: Optional[str] = None


class CheckoutSessionResponseDTO(BaseModel):
    """DTO for returning the state of a checkout session."""

    session_id: str
    step: Literal["details", "payment", "success"]
    closed: bool
    product: Product
    shipping_zones: list[ShippingZone]
    order: Optional[Order] = None
    invoice: Optional[Invoice] = None
    invoice_loading: bool = False
    qr_data_url: Optional[str] = None
    channels: list[ChannelOffer] = Field(default_factory=list)
    paying: bool = False
    notifications: list[Notification] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)
    created_at: datetime
