"""Test fixtures for in-memory implementations."""

from .clock import FakeClock
from .in_memory_event_network import InMemoryEventNetwork
from .nostr import build_dm, order_status_payload, payment_request_payload
from .fake_wallets import (
    TestInAppWallet,
    TestQrRenderer,
    TestRemoteWallet,
    failing_remote_wallet,
)

__all__ = [
    "FakeClock",
    "InMemoryEventNetwork",
    "TestInAppWallet",
    "TestQrRenderer",
    "TestRemoteWallet",
    "build_dm",
    "failing_remote_wallet",
    "order_status_payload",
    "payment_request_payload",
]
