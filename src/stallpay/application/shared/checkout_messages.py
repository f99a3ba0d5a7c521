"""NIP-15 checkout messages exchanged between buyer and merchant.

Every message is a JSON object with a ``type`` discriminant (0 order,
1 payment request, 2 order status) and an ``id`` correlating it to an order.
"""

from __future__ import annotations

import json
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class OrderContact(BaseModel):
    nostr: str
    phone: Optional[str] = None
    email: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class OrderMessage(BaseModel):
    """Order placed by the buyer (type 0)."""

    type: Literal[0] = 0
    id: str
    name: Optional[str] = None
    address: Optional[str] = None
    message: Optional[str] = None
    contact: OrderContact
    items: list[OrderItem] = Field(..., min_length=1)
    shipping_id: str


class PaymentOption(BaseModel):
    """One way to pay: ``ln``, ``btc``, ``lnurl``, ``url`` or anything a merchant adds."""

    type: str
    link: str = ""


class PaymentRequestMessage(BaseModel):
    """Payment details sent by the merchant (type 1)."""

    model_config = ConfigDict(extra="ignore")

    type: Literal[1] = 1
    id: str
    message: Optional[str] = None
    payment_options: list[PaymentOption] = Field(default_factory=list)

    def lightning_invoice(self) -> Optional[str]:
        """The bolt11 of the first ``ln`` option, the authoritative one here."""
        for option in self.payment_options:
            if option.type == "ln" and option.link:
                return option.link
        return None


class OrderStatusMessage(BaseModel):
    """Order status update sent by the merchant (type 2)."""

    model_config = ConfigDict(extra="ignore")

    type: Literal[2] = 2
    id: str
    message: Optional[str] = None
    paid: bool = False
    shipped: bool = False


CheckoutMessage = Annotated[
    Union[OrderMessage, PaymentRequestMessage, OrderStatusMessage],
    Field(discriminator="type"),
]

_checkout_message_adapter: TypeAdapter[CheckoutMessage] = TypeAdapter(CheckoutMessage)


def parse_checkout_message(text: str) -> CheckoutMessage:
    """Parse decrypted DM content into a typed checkout message.

    Raises:
        ValueError: If the text is not JSON or not a known checkout message
            (pydantic's ``ValidationError`` is a ``ValueError``).
    """
    return _checkout_message_adapter.validate_python(json.loads(text))


def serialize_checkout_message(message: BaseModel) -> str:
    """Compact JSON for DM content, omitting unset optional fields."""
    return json.dumps(
        message.model_dump(exclude_none=True),
        separators=(",", ":"),
        ensure_ascii=False,
    )
