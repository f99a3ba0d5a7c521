"""Dependencies for the checkout API."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from ..application.checkout.dtos import CreateCheckoutSessionDTO
from ..application.checkout.use_cases.checkout import CheckoutService
from ..application.checkout.use_cases.checkout_session import CheckoutSession
from ..application.checkout.use_cases.order_submission import OrderSubmissionService
from ..application.checkout.use_cases.payment_dispatcher import PaymentDispatcher
from ..application.checkout.use_cases.payment_listener import MerchantReplyListener
from ..crypto.signer import LocalKeySigner
from ..env import Settings, get_settings
from ..infrastructure.checkout.session_repository_impl import (
    InMemoryCheckoutSessionRepository,
)
from ..infrastructure.lightning.exchange_rate import ExchangeRateClient
from ..infrastructure.lightning.lnurl_client import LnurlClient
from ..infrastructure.lightning.nwc import NwcConnection, NwcWallet, parse_nwc_uri
from ..infrastructure.nostr.relay_pool import RelayPool


@lru_cache()
def get_settings_dependency() -> Settings:
    return get_settings()


@lru_cache()
def get_session_repository() -> InMemoryCheckoutSessionRepository:
    return InMemoryCheckoutSessionRepository()


@lru_cache()
def get_relay_pool() -> RelayPool:
    settings = get_settings_dependency()
    return RelayPool(settings.relay_urls)


@lru_cache()
def get_signer() -> Optional[LocalKeySigner]:
    settings = get_settings_dependency()
    if not settings.buyer_secret_key_hex:
        return None
    return LocalKeySigner(settings.buyer_secret_key_hex)


@lru_cache()
def get_exchange_rate_client() -> ExchangeRateClient:
    settings = get_settings_dependency()
    return ExchangeRateClient(settings.exchange_rate_url, settings.http_timeout)


@lru_cache()
def get_lnurl_client() -> LnurlClient:
    settings = get_settings_dependency()
    return LnurlClient(settings.http_timeout)


@lru_cache()
def get_nwc_connection() -> Optional[NwcConnection]:
    settings = get_settings_dependency()
    if not settings.nwc_uri:
        return None
    return parse_nwc_uri(settings.nwc_uri)


def get_nwc_wallet() -> NwcWallet:
    settings = get_settings_dependency()
    return NwcWallet(
        RelayPool,
        publish_timeout=settings.publish_timeout,
        query_timeout=settings.query_timeout,
    )


def build_checkout_session(dto: CreateCheckoutSessionDTO) -> CheckoutSession:
    """Wire a new session from the configured collaborators."""
    settings = get_settings_dependency()
    merchant_pubkey = dto.merchant_pubkey or settings.merchant_pubkey
    if not merchant_pubkey:
        raise ValueError("No merchant pubkey given and none configured")
    network = get_relay_pool()
    signer = get_signer()
    submission = OrderSubmissionService(
        network,
        signer,
        publish_timeout=settings.publish_timeout,
        emit_structured=settings.emit_structured_order,
        emit_human_readable=settings.emit_human_readable_order,
    )
    connection = get_nwc_connection()
    return CheckoutSession(
        merchant_pubkey=merchant_pubkey.lower(),
        product=dto.product,
        shipping_zones=dto.shipping_zones,
        submission=submission,
        listener=MerchantReplyListener(
            network,
            signer,
            query_timeout=settings.query_timeout,
            lookback_seconds=settings.dm_lookback_seconds,
        ),
        dispatcher=PaymentDispatcher(
            submission,
            remote_wallet=get_nwc_wallet() if connection else None,
            remote_connection=connection,
        ),
        exchange_rate=get_exchange_rate_client(),
        lnurl=get_lnurl_client(),
        lightning_address=dto.lightning_address
        or settings.merchant_lightning_address,
        invoice_source=settings.invoice_source,
        payment_request_timeout=settings.payment_request_timeout,
        payment_request_poll_interval=settings.payment_request_poll_interval,
        order_status_timeout=settings.order_status_timeout,
        order_status_poll_interval=settings.order_status_poll_interval,
    )


def get_checkout_service() -> CheckoutService:
    return CheckoutService(get_session_repository(), build_checkout_session)
