"""Payments router - eSewa form, gateway redirects, callbacks and status checks"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import ESEWA_FORM_URL
from ...database import get_db
from ...errors import PaymentCallbackError, PaymentNotCompleted
from ...models import Role, User
from ...realtime import RealtimePublisher, get_realtime_publisher
from .coordinator import PaymentCoordinator, failure_redirect_url
from .esewa import EsewaStatusClient, get_status_client, render_auto_submit_form
from .repository import PaymentRepository
from .schemas import (
    PaymentCallbackRequest,
    PaymentCallbackResponse,
    PaymentFormResponse,
    PaymentInitiateRequest,
    PaymentResponse,
    PaymentStatusRequest,
    PaymentStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_coordinator(
    db: Session = Depends(get_db),
    publisher: RealtimePublisher = Depends(get_realtime_publisher),
    status_client: EsewaStatusClient = Depends(get_status_client),
) -> PaymentCoordinator:
    return PaymentCoordinator(db, publisher, status_client)


@router.post("/esewa")
async def initiate_esewa_payment(
    body: PaymentInitiateRequest,
    format: Optional[str] = Query(None, description="'json' returns the form fields"),
    current_user: User = Depends(get_current_user),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    """
    Start an eSewa payment for an order or appointment.
    Returns an auto-submitting HTML form, or the raw fields with ?format=json.
    """
    fields = coordinator.initiate(
        current_user, order_id=body.order_id, appointment_id=body.appointment_id
    )
    if format == "json":
        return PaymentFormResponse(form_url=ESEWA_FORM_URL, fields=fields)
    return HTMLResponse(content=render_auto_submit_form(fields, ESEWA_FORM_URL))


@router.get("/success")
async def esewa_success(
    data: Optional[str] = Query(None),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    """Browser redirect from the gateway after payment"""
    try:
        result = coordinator.process_callback(data)
    except PaymentNotCompleted as e:
        return RedirectResponse(failure_redirect_url(e.reason, e.status), status_code=303)
    except PaymentCallbackError as e:
        return RedirectResponse(failure_redirect_url(e.reason), status_code=303)

    logger.info(f"✅ Payment successful - redirecting to {result.entity_type} success page")
    return RedirectResponse(result.redirect_url, status_code=303)


@router.post("/callback", response_model=PaymentCallbackResponse)
async def esewa_callback(
    body: PaymentCallbackRequest,
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    """Server-to-server callback with the same base64 payload as the success redirect"""
    try:
        result = coordinator.process_callback(body.encoded)
    except PaymentCallbackError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"success": False, "reason": e.reason, "detail": str(e)},
        )
    return result.to_response()


@router.get("/failure")
async def esewa_failure(
    data: Optional[str] = Query(None),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    """Browser redirect from the gateway when the customer cancels or payment fails"""
    coordinator.process_failure(data)
    return RedirectResponse(failure_redirect_url("payment_failed"), status_code=303)


@router.post("/status", response_model=PaymentStatusResponse)
async def check_payment_status(
    body: PaymentStatusRequest,
    _current_user: User = Depends(get_current_user),
    coordinator: PaymentCoordinator = Depends(get_payment_coordinator),
):
    """Ask the gateway about a transaction and settle it if it completed"""
    try:
        status_data, result = coordinator.check_status(body.transaction_uuid, body.total_amount)
    except httpx.HTTPError as e:
        logger.error(f"❌ eSewa status check failed for {body.transaction_uuid}: {str(e)}")
        raise HTTPException(status_code=502, detail="Failed to check payment status") from e
    except PaymentCallbackError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e

    return PaymentStatusResponse(
        success=True,
        status=status_data.get("status", ""),
        ref_id=status_data.get("ref_id"),
        settled=result is not None,
        already_processed=bool(result and result.already_processed),
    )


@router.get("", response_model=list[PaymentResponse])
async def get_payments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's payments; admins see every payment"""
    if current_user.role == Role.ADMIN:
        return PaymentRepository.get_all_payments(db)
    return PaymentRepository.get_user_payments(db, current_user.id)
