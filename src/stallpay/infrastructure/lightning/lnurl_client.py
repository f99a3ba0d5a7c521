"""LNURL-pay (LUD-06 / LUD-16) client."""

from __future__ import annotations

import logging
from typing import Optional, Type
from types import TracebackType

import httpx
from pydantic import ValidationError

from ...application.checkout.validators import comment_fits, validate_sendable_amount
from ...domain.checkout.entities import Invoice, LnurlPayParams, SuccessAction
from ...domain.errors import InvoiceError, LnurlError, MalformedAddress
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)


def lightning_address_to_lnurl(address: str) -> str:
    """Convert ``user@domain`` to its well-known LNURL-pay endpoint."""
    parts = address.strip().split("@")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise MalformedAddress(f"Invalid Lightning address format: {address!r}")
    user, domain = parts
    return f"https://{domain}/.well-known/lnurlp/{user}"


class LnurlClient:
    """Resolves Lightning addresses and requests invoices from their callbacks."""

    def __init__(
        self,
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(timeout=timeout, transport=transport)

    async def fetch_pay_params(self, lightning_address: str) -> LnurlPayParams:
        url = lightning_address_to_lnurl(lightning_address)
        try:
            resp = await self._http.get(url)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LnurlError("Failed to fetch Lightning address info") from e

        if isinstance(data, dict) and data.get("status") == "ERROR":
            raise LnurlError(data.get("reason") or "LNURL error")
        try:
            return LnurlPayParams.model_validate(data)
        except ValidationError as e:
            raise LnurlError(f"Invalid LNURL-pay response: {e}") from e

    async def request_invoice(
        self,
        params: LnurlPayParams,
        amount_sats: int,
        comment: Optional[str] = None,
    ) -> Invoice:
        # Bounds are checked before any request leaves the process.
        amount_msat = validate_sendable_amount(
            amount_sats, params.min_sendable, params.max_sendable
        )
        query: dict[str, str] = {"amount": str(amount_msat)}
        if comment_fits(comment, params.comment_allowed):
            query["comment"] = comment  # type: ignore[assignment]

        try:
            resp = await self._http.get(params.callback, params=query)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise InvoiceError("Failed to get invoice") from e

        if not isinstance(data, dict):
            raise InvoiceError("Failed to get invoice")
        if data.get("status") == "ERROR":
            raise InvoiceError(data.get("reason") or "Failed to generate invoice")
        bolt11 = data.get("pr")
        if not bolt11:
            raise InvoiceError("LNURL callback returned no invoice")

        success_action = data.get("successAction")
        logger.info("Received invoice for %s sats", amount_sats)
        return Invoice(
            bolt11=bolt11,
            amount_sats=amount_sats,
            min_sendable=params.min_sendable,
            max_sendable=params.max_sendable,
            source="lnurl",
            success_action=(
                SuccessAction.model_validate(success_action)
                if isinstance(success_action, dict) and "tag" in success_action
                else None
            ),
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "LnurlClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
