"""Shared pytest fixtures for checkout tests."""

from __future__ import annotations

import pytest

from stallpay.crypto.key_utils import generate_secret_key_hex
from stallpay.crypto.signer import LocalKeySigner
from stallpay.domain.checkout.entities import Product, ProductShipping, ShippingZone
from tests.fixtures import FakeClock, InMemoryEventNetwork


@pytest.fixture
def buyer_signer() -> LocalKeySigner:
    """Signing identity of the buyer."""
    return LocalKeySigner(generate_secret_key_hex())


@pytest.fixture
def merchant_signer() -> LocalKeySigner:
    """Signing identity of the merchant, used to craft replies."""
    return LocalKeySigner(generate_secret_key_hex())


@pytest.fixture
def event_network() -> InMemoryEventNetwork:
    return InMemoryEventNetwork()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def digital_zone() -> ShippingZone:
    return ShippingZone(id="digital", name="Digital download", cost=0)


@pytest.fixture
def physical_zone() -> ShippingZone:
    return ShippingZone(id="eu", name="Europe", cost=7.5, countries=["DE", "FR"])


@pytest.fixture
def product() -> Product:
    return Product(
        id="tee-01",
        name="Stall T-shirt",
        price=25.0,
        currency="USD",
        shipping=[ProductShipping(id="eu", cost=5.0)],
    )
