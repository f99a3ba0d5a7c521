"""Fiat to satoshi conversion against a CoinGecko-style price oracle."""

from __future__ import annotations

import logging
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Optional, Type
from types import TracebackType

import httpx

from ...domain.errors import ConversionError
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)

SATS_PER_BTC = Decimal(100_000_000)


def fiat_amount_to_sats(amount: float, btc_price: float) -> int:
    """``ceil(amount / btc_price * 1e8)`` computed without float drift."""
    sats = Decimal(str(amount)) / Decimal(str(btc_price)) * SATS_PER_BTC
    return int(sats.to_integral_value(rounding=ROUND_CEILING))


class ExchangeRateClient:
    """Fetches a fresh BTC price on every call; rates are never cached."""

    def __init__(
        self,
        rate_url: str = "https://api.coingecko.com/api/v3/simple/price",
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._rate_url = rate_url
        self._http = AsyncHttpClient(timeout=timeout, transport=transport)

    async def get_btc_price(self, currency: str) -> float:
        code = currency.lower()
        try:
            resp = await self._http.get(
                self._rate_url, params={"ids": "bitcoin", "vs_currencies": code}
            )
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Exchange rate oracle returned %s", e.response.status_code)
            raise ConversionError("Failed to fetch exchange rate") from e
        except httpx.HTTPError as e:
            logger.warning("Exchange rate oracle unreachable: %s", e)
            raise ConversionError(
                "Could not fetch current Bitcoin exchange rate"
            ) from e
        except ValueError as e:
            raise ConversionError("Exchange rate oracle returned invalid JSON") from e

        price = (data.get("bitcoin") or {}).get(code) if isinstance(data, dict) else None
        if not isinstance(price, (int, float)) or price <= 0:
            raise ConversionError(f"Unsupported currency: {currency}")
        return float(price)

    async def fiat_to_sats(self, amount: float, currency: str) -> int:
        price = await self.get_btc_price(currency)
        try:
            sats = fiat_amount_to_sats(amount, price)
        except InvalidOperation as e:
            raise ConversionError(f"Cannot convert {amount} {currency}") from e
        logger.info("Converted %s %s to %s sats at %s", amount, currency, sats, price)
        return sats

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ExchangeRateClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
