"""Checkout session API routes."""

from __future__ import annotations

import logging
import time
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from prometheus_client import Counter, Gauge, Histogram

from ...application.checkout.dtos import (
    CheckoutFormDTO,
    CheckoutSessionResponseDTO,
    CreateCheckoutSessionDTO,
    OrderStatusResponseDTO,
    PaymentOutcomeDTO,
)
from ...application.checkout.use_cases.checkout import CheckoutService
from ...application.checkout.use_cases.payment_dispatcher import PaymentChannel
from ...domain.errors import (
    AuthenticationRequired,
    CheckoutCancelled,
    CheckoutError,
    InvalidCheckoutState,
    PaymentInProgress,
)
from ..dependencies import get_checkout_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout/sessions", tags=["checkout"])

INVOICE_DURATION_BUCKETS = (
    [0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 7.5, 10.0]
    + [float(x) for x in range(15, 65, 5)]  # merchant invoices wait up to 30s
    + [float("inf")]
)

checkout_submissions_total = Counter(
    "checkout_submissions_total",
    "Total order submissions processed",
    ["status"],
)

checkout_payment_attempts_total = Counter(
    "checkout_payment_attempts_total",
    "Total payment attempts by channel",
    ["channel", "status"],
)

checkout_invoice_preparation_seconds = Histogram(
    "checkout_invoice_preparation_seconds",
    "Wall time to submit an order or retry its invoice (s)",
    ["operation", "status"],
    buckets=INVOICE_DURATION_BUCKETS,
)

checkout_payments_inprogress = Gauge(
    "checkout_payments_inprogress",
    "Number of payments currently being executed",
    multiprocess_mode="livesum",
)


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, AuthenticationRequired):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    if isinstance(e, (InvalidCheckoutState, PaymentInProgress, CheckoutCancelled)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, CheckoutError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    logger.exception("Unexpected checkout failure")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Checkout failed: {str(e)}",
    )


def _status_label(e: Exception) -> str:
    if isinstance(e, (ValueError, InvalidCheckoutState, AuthenticationRequired)):
        return "client_error"
    return "server_error"


def _session_not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail="Checkout session not found"
    )


@router.post(
    "/",
    response_model=CheckoutSessionResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    session_data: CreateCheckoutSessionDTO,
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutSessionResponseDTO:
    """Open a checkout dialog for one product."""
    try:
        return await checkout_service.create_session(session_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/", response_model=List[CheckoutSessionResponseDTO])
async def get_sessions(
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> List[CheckoutSessionResponseDTO]:
    return await checkout_service.get_all_sessions()


@router.get("/{session_id}", response_model=CheckoutSessionResponseDTO)
async def get_session(
    session_id: str = Path(..., description="Checkout session identifier"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutSessionResponseDTO:
    session = await checkout_service.get_session(session_id)
    if not session:
        raise _session_not_found()
    return session


@router.post("/{session_id}/order", response_model=CheckoutSessionResponseDTO)
async def submit_order(
    form: CheckoutFormDTO,
    session_id: str = Path(..., description="Checkout session identifier"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutSessionResponseDTO:
    """Publish the order to the merchant and prepare its invoice."""
    start_time = time.perf_counter()
    try:
        session = await checkout_service.submit_order(session_id, form)
    except Exception as e:
        label = _status_label(e)
        checkout_submissions_total.labels(status=label).inc()
        checkout_invoice_preparation_seconds.labels(
            operation="submit", status=label
        ).observe(time.perf_counter() - start_time)
        raise _to_http_error(e)
    if not session:
        raise _session_not_found()
    label = "success" if session.order is not None else "rejected"
    checkout_submissions_total.labels(status=label).inc()
    checkout_invoice_preparation_seconds.labels(
        operation="submit", status=label
    ).observe(time.perf_counter() - start_time)
    return session


@router.post("/{session_id}/invoice", response_model=CheckoutSessionResponseDTO)
async def retry_invoice(
    session_id: str = Path(..., description="Checkout session identifier"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutSessionResponseDTO:
    """Request a fresh invoice for the submitted order."""
    start_time = time.perf_counter()
    try:
        session = await checkout_service.retry_invoice(session_id)
    except Exception as e:
        checkout_invoice_preparation_seconds.labels(
            operation="retry", status=_status_label(e)
        ).observe(time.perf_counter() - start_time)
        raise _to_http_error(e)
    if not session:
        raise _session_not_found()
    checkout_invoice_preparation_seconds.labels(
        operation="retry",
        status="success" if session.invoice is not None else "failed",
    ).observe(time.perf_counter() - start_time)
    return session


@router.post("/{session_id}/payments/{channel}", response_model=PaymentOutcomeDTO)
async def pay(
    channel: PaymentChannel,
    session_id: str = Path(..., description="Checkout session identifier"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> PaymentOutcomeDTO:
    """Pay the session's invoice through a wallet channel."""
    checkout_payments_inprogress.inc()
    try:
        outcome = await checkout_service.pay(session_id, channel)
    except Exception as e:
        checkout_payment_attempts_total.labels(
            channel=channel.value, status=_status_label(e)
        ).inc()
        raise _to_http_error(e)
    finally:
        checkout_payments_inprogress.dec()
    if not outcome:
        raise _session_not_found()
    checkout_payment_attempts_total.labels(
        channel=channel.value, status="paid" if outcome.paid else "failed"
    ).inc()
    return outcome


@router.post(
    "/{session_id}/acknowledgement", response_model=CheckoutSessionResponseDTO
)
async def acknowledge_manual_payment(
    session_id: str = Path(..., description="Checkout session identifier"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutSessionResponseDTO:
    """The buyer paid the invoice with an outside wallet."""
    try:
        session = await checkout_service.acknowledge_manual_payment(session_id)
    except CheckoutError as e:
        raise _to_http_error(e)
    if not session:
        raise _session_not_found()
    checkout_payment_attempts_total.labels(
        channel=PaymentChannel.MANUAL.value, status="acknowledged"
    ).inc()
    return session


@router.get("/{session_id}/status", response_model=OrderStatusResponseDTO)
async def wait_for_order_status(
    session_id: str = Path(..., description="Checkout session identifier"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> OrderStatusResponseDTO:
    """Wait for the merchant's status update on the order."""
    try:
        order_status = await checkout_service.wait_for_order_status(session_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        raise _to_http_error(e)
    if not order_status:
        raise _session_not_found()
    return order_status


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def close_session(
    session_id: str = Path(..., description="Checkout session identifier"),
    checkout_service: CheckoutService = Depends(get_checkout_service),
) -> Response:
    if not await checkout_service.close_session(session_id):
        raise _session_not_found()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
