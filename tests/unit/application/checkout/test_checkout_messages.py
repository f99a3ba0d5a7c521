"""Unit tests for parsing merchant checkout messages."""

import json

import pytest

from stallpay.application.shared.checkout_messages import (
    OrderStatusMessage,
    PaymentRequestMessage,
    parse_checkout_message,
)


def test_parse_payment_request() -> None:
    message = parse_checkout_message(
        json.dumps(
            {
                "type": 1,
                "id": "order-1",
                "message": "Thanks!",
                "payment_options": [
                    {"type": "url", "link": "https://pay.example"},
                    {"type": "ln", "link": "lnbc1test"},
                ],
            }
        )
    )
    assert isinstance(message, PaymentRequestMessage)
    assert message.lightning_invoice() == "lnbc1test"


def test_payment_request_without_ln_option() -> None:
    message = parse_checkout_message(
        '{"type":1,"id":"o","payment_options":[{"type":"btc","link":"bc1q"}]}'
    )
    assert isinstance(message, PaymentRequestMessage)
    assert message.lightning_invoice() is None


def test_payment_request_with_unknown_option_type() -> None:
    message = parse_checkout_message(
        '{"type":1,"id":"o","payment_options":'
        '[{"type":"bolt12"},{"type":"ln","link":"lnbc10u1pmixed"}]}'
    )
    assert isinstance(message, PaymentRequestMessage)
    assert message.lightning_invoice() == "lnbc10u1pmixed"


def test_parse_order_status_ignores_unknown_fields() -> None:
    message = parse_checkout_message(
        '{"type":2,"id":"o","paid":true,"shipped":false,"tracking":"x"}'
    )
    assert isinstance(message, OrderStatusMessage)
    assert message.paid is True
    assert message.shipped is False


@pytest.mark.parametrize(
    "text",
    [
        "🛒 NEW ORDER #ABC",
        "[1, 2]",
        '{"type": 7, "id": "o"}',
        '{"type": 1}',
    ],
)
def test_non_checkout_content_is_rejected(text: str) -> None:
    with pytest.raises(ValueError):
        parse_checkout_message(text)
