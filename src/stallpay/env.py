from __future__ import annotations

import os
from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator

InvoiceSource = Literal["lnurl", "merchant"]


class Settings(BaseModel):
    """Typed application settings built from environment variables."""

    # Event network
    relay_urls: list[str] = ["wss://relay.damus.io", "wss://nos.lol"]
    publish_timeout: float = 5.0
    query_timeout: float = 10.0
    dm_lookback_seconds: int = 300

    # Merchant listener windows
    payment_request_timeout: float = 30.0
    payment_request_poll_interval: float = 2.0
    order_status_timeout: float = 120.0
    order_status_poll_interval: float = 3.0

    # Lightning
    exchange_rate_url: str = "https://api.coingecko.com/api/v3/simple/price"
    http_timeout: float = 10.0
    invoice_source: InvoiceSource = "lnurl"

    # Merchant / stall
    merchant_pubkey: Optional[str] = None
    merchant_lightning_address: Optional[str] = None

    # Order emission
    emit_structured_order: bool = True
    emit_human_readable_order: bool = True

    # Buyer identity and wallets
    buyer_secret_key_hex: Optional[str] = None
    nwc_uri: Optional[str] = None

    # API settings
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    api_debug: bool = False
    api_cors_origins: list[str] = ["*"]

    # Application settings
    app_name: str = "StallPay"
    app_version: str = "1.0.0"

    @field_validator("relay_urls")
    @classmethod
    def validate_relay_urls(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one relay URL is required")
        for url in v:
            parsed = urlparse(url)
            if parsed.scheme not in {"ws", "wss"}:
                raise ValueError(f"Relay URL must start with ws:// or wss://: {url}")
            if not parsed.netloc:
                raise ValueError(f"Relay URL must include a host: {url}")
        return v

    @field_validator("exchange_rate_url")
    @classmethod
    def validate_exchange_rate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"}:
            raise ValueError("Exchange rate URL must start with http:// or https://")
        if not parsed.netloc:
            raise ValueError("Exchange rate URL must include a host")
        return v

    @field_validator("merchant_pubkey")
    @classmethod
    def validate_merchant_pubkey(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            raw = bytes.fromhex(v)
        except ValueError as e:
            raise ValueError(f"Merchant pubkey must be hex: {e}") from e
        if len(raw) != 32:
            raise ValueError("Merchant pubkey must be 32 bytes (64 hex chars)")
        return v.lower()

    @field_validator("merchant_lightning_address")
    @classmethod
    def validate_merchant_lightning_address(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.count("@") != 1:
            raise ValueError("Merchant Lightning address must look like user@domain")
        return v


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item]


def get_settings() -> Settings:
    """Return typed settings instance sourced from env vars."""
    return Settings(
        relay_urls=_env_list("RELAY_URLS", "wss://relay.damus.io,wss://nos.lol"),
        publish_timeout=float(os.environ.get("PUBLISH_TIMEOUT", "5")),
        query_timeout=float(os.environ.get("QUERY_TIMEOUT", "10")),
        dm_lookback_seconds=int(os.environ.get("DM_LOOKBACK_SECONDS", "300")),
        payment_request_timeout=float(
            os.environ.get("PAYMENT_REQUEST_TIMEOUT", "30")
        ),
        payment_request_poll_interval=float(
            os.environ.get("PAYMENT_REQUEST_POLL_INTERVAL", "2")
        ),
        order_status_timeout=float(os.environ.get("ORDER_STATUS_TIMEOUT", "120")),
        order_status_poll_interval=float(
            os.environ.get("ORDER_STATUS_POLL_INTERVAL", "3")
        ),
        exchange_rate_url=os.environ.get(
            "EXCHANGE_RATE_URL", "https://api.coingecko.com/api/v3/simple/price"
        ),
        http_timeout=float(os.environ.get("HTTP_TIMEOUT", "10")),
        invoice_source=os.environ.get("INVOICE_SOURCE", "lnurl"),  # type: ignore[arg-type]
        merchant_pubkey=os.environ.get("MERCHANT_PUBKEY") or None,
        merchant_lightning_address=os.environ.get("MERCHANT_LIGHTNING_ADDRESS")
        or None,
        emit_structured_order=_env_bool("EMIT_STRUCTURED_ORDER", "true"),
        emit_human_readable_order=_env_bool("EMIT_HUMAN_READABLE_ORDER", "true"),
        buyer_secret_key_hex=os.environ.get("BUYER_SECRET_KEY_HEX") or None,
        nwc_uri=os.environ.get("NWC_URI") or None,
        api_host=os.environ.get("API_HOST", "127.0.0.1"),
        api_port=int(os.environ.get("API_PORT", "8000")),
        api_debug=_env_bool("API_DEBUG", "false"),
        api_cors_origins=_env_list("API_CORS_ORIGINS", "*"),
        app_name=os.environ.get("APP_NAME", "StallPay"),
        app_version=os.environ.get("APP_VERSION", "1.0.0"),
    )
