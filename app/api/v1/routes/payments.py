from __future__ import annotations
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
import stripe

from app.db.session import get_db
from app.api.deps import get_current_user, get_optional_user, get_payment_adapters, get_paynow_adapter, get_stripe_adapter
from app.models.user import User
from app.schemas.payments import (
    CardConfirmOut,
    CardConfirmRequest,
    PaymentCheckOut,
    PaymentResponse,
    PaymentStatusOut,
    PaymentStatusRequest,
    ProcessPaymentRequest,
)
from app.services.paynow_client import parse_message
from app.services.payment_providers import PaymentDetails, PaynowAdapter, StripeAdapter
from app.services.payment_service import (
    check_payment,
    check_payment_status,
    confirm_card_payment,
    handle_paynow_result,
    handle_stripe_event,
    process_payment,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


# PaymentError subclasses are turned into {"detail": ...} responses by the app-level handler.

@router.post("/payments/process", response_model=PaymentResponse)
def process(body: ProcessPaymentRequest, db: Session = Depends(get_db),
            user: User | None = Depends(get_optional_user), adapters: dict = Depends(get_payment_adapters)):
    d = body.details
    details = PaymentDetails(
        amount=d.amount,
        reference=d.reference,
        email=d.email,
        phone=d.phone,
        items=[i.model_dump() for i in d.items] if d.items else None,
        description=d.description,
        metadata=d.metadata,
        return_url=d.returnUrl,
        method=d.method,
    )
    return process_payment(db, body.provider, details, adapters=adapters, user=user)


@router.post("/payments/status", response_model=PaymentStatusOut)
def status(body: PaymentStatusRequest, db: Session = Depends(get_db), adapter: PaynowAdapter = Depends(get_paynow_adapter)):
    return check_payment_status(db, adapter, body.pollUrl).as_dict()


@router.post("/payments/{payment_id}/status", response_model=PaymentCheckOut)
def payment_status(payment_id: str, db: Session = Depends(get_db), user: User | None = Depends(get_optional_user),
                   adapter: PaynowAdapter = Depends(get_paynow_adapter)):
    payment, outcome = check_payment(db, adapter, payment_id, user=user)
    return {**outcome.as_dict(), "paymentId": payment.id, "paymentStatus": payment.status}


@router.post("/payments/card/confirm", response_model=CardConfirmOut)
def card_confirm(body: CardConfirmRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user),
                 adapter: StripeAdapter = Depends(get_stripe_adapter)):
    return confirm_card_payment(db, adapter, user, body.bookingId, body.paymentIntentId)


@router.post("/webhooks/stripe")
async def stripe_webhook(req: Request, db: Session = Depends(get_db), adapter: StripeAdapter = Depends(get_stripe_adapter)):
    payload = await req.body()
    signature = req.headers.get("stripe-signature") or ""
    if not adapter.webhook_secret:
        raise HTTPException(status_code=500, detail="Stripe webhook secret is not configured")
    try:
        event = adapter.construct_event(payload, signature)
    except (ValueError, stripe.SignatureVerificationError):
        raise HTTPException(status_code=400, detail="Invalid Stripe signature")
    logger.info("Stripe webhook %s", event["type"])
    applied = handle_stripe_event(db, event)
    return {"received": True, "applied": applied}


@router.post("/webhooks/paynow")
async def paynow_webhook(req: Request, db: Session = Depends(get_db), adapter: PaynowAdapter = Depends(get_paynow_adapter)):
    body = await req.body()
    # undecodable bytes become U+FFFD, so a mangled body fails the hash check instead of raising
    values = parse_message(body.decode("utf-8", errors="replace"))
    if not adapter.client.verify(values):
        raise HTTPException(status_code=401, detail="Invalid Paynow hash")
    logger.info("Paynow result reference=%s status=%s", values.get("reference"), values.get("status"))
    applied = handle_paynow_result(db, values)
    return {"ok": True, "applied": applied}
