"""Callable endpoints the browser client invokes directly (JSON in, JSON out)."""
from __future__ import annotations
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user, get_paynow_adapter, get_stripe_adapter
from app.models.user import User
from app.schemas.payments import CreateIntentRequest, CreatePaynowRequest, PaymentStatusRequest
from app.services.errors import PaymentError
from app.services.payment_providers import PaymentDetails, PaynowAdapter, StripeAdapter
from app.services.payment_service import check_payment_status, start_card_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions", tags=["functions"])


@router.post("/create-payment-intent")
def create_payment_intent(body: CreateIntentRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user),
                          adapter: StripeAdapter = Depends(get_stripe_adapter)):
    if not body.bookingId or not body.amount:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})
    details = PaymentDetails(amount=body.amount, reference=body.bookingId, email=user.email, metadata=body.metadata)
    try:
        _, client_secret = start_card_payment(db, adapter, user, details)
    except PaymentError as e:
        db.rollback()
        logger.error("create-payment-intent failed booking=%s: %s", body.bookingId, e)
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    return {"clientSecret": client_secret}


@router.post("/create-paynow-payment")
def create_paynow_payment(body: CreatePaynowRequest, adapter: PaynowAdapter = Depends(get_paynow_adapter)):
    """Initiates only; nothing is stored. Use /payments/process for a tracked attempt."""
    if not body.email or not body.amount or not body.reference or not body.returnUrl:
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": "Missing required parameters: email, amount, reference, and returnUrl are required",
        })
    details = PaymentDetails(
        amount=body.amount,
        reference=body.reference,
        email=body.email,
        phone=body.phone,
        items=[i.model_dump() for i in body.items] if body.items else None,
        return_url=body.returnUrl,
    )
    try:
        result = adapter.initiate(details)
    except PaymentError as e:
        logger.error("create-paynow-payment failed reference=%s: %s", body.reference, e)
        return JSONResponse(status_code=500, content={"success": False, "error": e.message})
    if not result.success:
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": "Payment initiation failed: " + (result.error or "Unknown error"),
        })
    return {"success": True, "hash": result.hash, "redirectUrl": result.redirect_url, "pollUrl": result.poll_url}


@router.post("/check-paynow-status")
def check_paynow_status(body: PaymentStatusRequest, db: Session = Depends(get_db), adapter: PaynowAdapter = Depends(get_paynow_adapter)):
    if not body.pollUrl:
        return JSONResponse(status_code=400, content={"paid": False, "status": "error", "error": "Missing poll URL"})
    try:
        outcome = check_payment_status(db, adapter, body.pollUrl)
    except PaymentError as e:
        return JSONResponse(status_code=e.status_code, content={"paid": False, "status": "error", "error": e.message})
    if outcome.state == "error":
        return JSONResponse(status_code=500, content=outcome.as_dict())
    return outcome.as_dict()
