"""Use case tests for MerchantReplyListener and the poll loop."""

from __future__ import annotations

import json
import time

import pytest

from stallpay.application.checkout.use_cases.payment_listener import (
    MerchantReplyListener,
)
from stallpay.crypto.key_utils import generate_secret_key_hex
from stallpay.crypto.signer import LocalKeySigner
from stallpay.domain.errors import (
    AuthenticationRequired,
    CheckoutCancelled,
    ListenerTimeout,
    QueryTransientFailure,
    UnsupportedEncryption,
)
from tests.fixtures import build_dm, order_status_payload, payment_request_payload

ORDER_ID = "lq2k3m9z-x7y8z9"


@pytest.fixture
def listener(event_network, buyer_signer, fake_clock) -> MerchantReplyListener:
    return MerchantReplyListener(
        event_network, buyer_signer, clock=fake_clock, sleep=fake_clock.sleep
    )


async def _reply(network, merchant, buyer, payload, **kwargs) -> None:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    network.add_event(await build_dm(merchant, buyer.pubkey, text, **kwargs))


async def test_returns_matching_payment_request(
    listener, event_network, merchant_signer, buyer_signer
) -> None:
    await _reply(
        event_network, merchant_signer, buyer_signer, payment_request_payload("other-order")
    )
    await _reply(
        event_network,
        merchant_signer,
        buyer_signer,
        payment_request_payload(ORDER_ID, "lnbc1match", message="Thanks"),
    )

    request = await listener.wait_for_payment_request(merchant_signer.pubkey, ORDER_ID)

    assert request.lightning_invoice() == "lnbc1match"
    assert request.message == "Thanks"
    (query,) = event_network.query_calls[0]
    assert query.kinds == [4]
    assert query.authors == [merchant_signer.pubkey]
    assert query.p_tags == [buyer_signer.pubkey]
    assert query.limit == 10
    assert query.since == pytest.approx(int(time.time()) - 300, abs=5)


async def test_skips_noise_and_finds_the_reply(
    listener, event_network, merchant_signer, buyer_signer
) -> None:
    stranger = LocalKeySigner(generate_secret_key_hex())
    # Encrypted to someone else but tagged to the buyer: cannot be decrypted.
    event_network.add_event(
        (await build_dm(merchant_signer, stranger.pubkey, "x")).model_copy(
            update={"tags": [["p", buyer_signer.pubkey]]}
        )
    )
    await _reply(event_network, merchant_signer, buyer_signer, "plain text note")
    await _reply(
        event_network, merchant_signer, buyer_signer, order_status_payload(ORDER_ID)
    )
    await _reply(
        event_network,
        merchant_signer,
        buyer_signer,
        payment_request_payload(ORDER_ID, None),
    )
    await _reply(
        event_network,
        merchant_signer,
        buyer_signer,
        payment_request_payload(ORDER_ID, "lnbc1good"),
        created_at=int(time.time()) - 60,
    )

    request = await listener.wait_for_payment_request(merchant_signer.pubkey, ORDER_ID)
    assert request.lightning_invoice() == "lnbc1good"


async def test_first_match_wins(
    listener, event_network, merchant_signer, buyer_signer
) -> None:
    now = int(time.time())
    await _reply(
        event_network,
        merchant_signer,
        buyer_signer,
        order_status_payload(ORDER_ID, paid=False),
        created_at=now - 10,
    )
    await _reply(
        event_network,
        merchant_signer,
        buyer_signer,
        order_status_payload(ORDER_ID, paid=True, shipped=True),
        created_at=now,
    )

    status = await listener.wait_for_order_status(merchant_signer.pubkey, ORDER_ID)

    # Newest first, as the relay returns them.
    assert status.paid is True
    assert status.shipped is True
    assert event_network.query_calls[0][0].limit == 20


async def test_reply_arriving_later_is_picked_up(
    event_network, merchant_signer, buyer_signer, fake_clock
) -> None:
    rounds = 0

    async def sleep(seconds: float) -> None:
        nonlocal rounds
        rounds += 1
        await fake_clock.sleep(seconds)
        if rounds == 3:
            await _reply(
                event_network,
                merchant_signer,
                buyer_signer,
                payment_request_payload(ORDER_ID),
            )

    listener = MerchantReplyListener(
        event_network, buyer_signer, clock=fake_clock, sleep=sleep
    )
    request = await listener.wait_for_payment_request(merchant_signer.pubkey, ORDER_ID)

    assert request.id == ORDER_ID
    assert len(event_network.query_calls) == 4
    assert fake_clock.sleeps == [2.0, 2.0, 2.0]


async def test_transient_query_failures_are_recovered(
    listener, event_network, merchant_signer, buyer_signer
) -> None:
    event_network.fail_query(
        QueryTransientFailure("relay down"), ConnectionError("reset")
    )
    await _reply(
        event_network, merchant_signer, buyer_signer, payment_request_payload(ORDER_ID)
    )

    request = await listener.wait_for_payment_request(merchant_signer.pubkey, ORDER_ID)
    assert request.id == ORDER_ID
    assert len(event_network.query_calls) == 3


async def test_timeout_fires_at_the_deadline(
    listener, event_network, merchant_signer, fake_clock
) -> None:
    start = fake_clock()
    with pytest.raises(ListenerTimeout, match="payment request"):
        await listener.wait_for_payment_request(merchant_signer.pubkey, ORDER_ID)

    assert fake_clock() - start >= 30
    assert fake_clock() - start < 30 + 2
    assert all(s <= 2 for s in fake_clock.sleeps)


async def test_order_status_timeout_window(
    listener, merchant_signer, fake_clock
) -> None:
    start = fake_clock()
    with pytest.raises(ListenerTimeout):
        await listener.wait_for_order_status(merchant_signer.pubkey, ORDER_ID)
    assert fake_clock() - start == pytest.approx(120)
    assert max(fake_clock.sleeps) == 3


async def test_stops_when_owner_goes_away(
    listener, event_network, merchant_signer, fake_clock
) -> None:
    alive = iter([True, True, False])

    with pytest.raises(CheckoutCancelled):
        await listener.wait_for_payment_request(
            merchant_signer.pubkey, ORDER_ID, is_alive=lambda: next(alive)
        )
    assert len(event_network.query_calls) == 2


async def test_requires_signer(event_network, merchant_signer) -> None:
    with pytest.raises(AuthenticationRequired):
        await MerchantReplyListener(event_network, None).wait_for_payment_request(
            merchant_signer.pubkey, ORDER_ID
        )


async def test_requires_decryption(event_network, merchant_signer) -> None:
    signer = LocalKeySigner(generate_secret_key_hex(), enable_nip04=False)
    with pytest.raises(UnsupportedEncryption):
        await MerchantReplyListener(event_network, signer).wait_for_order_status(
            merchant_signer.pubkey, ORDER_ID
        )


async def test_unknown_payment_option_types_are_tolerated(
    listener, event_network, merchant_signer, buyer_signer
) -> None:
    await _reply(
        event_network,
        merchant_signer,
        buyer_signer,
        {
            "type": 1,
            "id": ORDER_ID,
            "payment_options": [
                {"type": "bolt12"},
                {"type": "ln", "link": "lnbc10u1pmixed"},
            ],
        },
    )

    request = await listener.wait_for_payment_request(
        merchant_signer.pubkey, ORDER_ID, timeout=4
    )

    assert request.lightning_invoice() == "lnbc10u1pmixed"


async def test_reply_with_forged_signature_is_ignored(
    listener, event_network, merchant_signer, buyer_signer
) -> None:
    forged = await build_dm(
        merchant_signer,
        buyer_signer.pubkey,
        json.dumps(payment_request_payload(ORDER_ID, "lnbc1forged")),
    )
    other = await build_dm(merchant_signer, buyer_signer.pubkey, "unrelated")
    event_network.add_event(forged.model_copy(update={"sig": other.sig}))
    await _reply(
        event_network,
        merchant_signer,
        buyer_signer,
        payment_request_payload(ORDER_ID, "lnbc1genuine"),
        created_at=int(time.time()) - 30,
    )

    request = await listener.wait_for_payment_request(merchant_signer.pubkey, ORDER_ID)

    assert request.lightning_invoice() == "lnbc1genuine"
