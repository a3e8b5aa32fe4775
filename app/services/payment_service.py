import json
import logging
import uuid
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.booking import Booking
from app.models.payment import Payment, TERMINAL_STATUSES
from app.models.user import User
from app.schemas.payments import PaynowPaymentOut, StripePaymentOut
from app.services.audit_service import log_audit
from app.services.errors import AuthenticationError, ConfigurationError, NotFoundError, ProviderError, ValidationError
from app.services.payment_providers import (
    PaymentAdapter,
    PaymentDetails,
    PaynowAdapter,
    PollOutcome,
    StripeAdapter,
    classify_status,
)
from app.services.reconciliation_service import reconcile_payment

logger = logging.getLogger(__name__)

# booking.payment_status values from which a new attempt may start
_RETRYABLE = ("pending", "failed")


def _validate(details: PaymentDetails) -> None:
    if details.amount is None or Decimal(str(details.amount)) <= 0:
        raise ValidationError("Missing required payment details: amount")
    if not (details.reference or "").strip():
        raise ValidationError("Missing required payment details: reference")
    if not (details.email or "").strip():
        raise ValidationError("Missing required payment details: email")


def _start_attempt(db: Session, booking: Booking, gateway: str, gateway_ref: str | None) -> None:
    db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.payment_status.in_(_RETRYABLE))
        .values(payment_status="processing", payment_gateway=gateway, payment_gateway_reference=gateway_ref)
    )


def _process_paynow(db: Session, adapter: PaynowAdapter, details: PaymentDetails, user: User | None) -> PaynowPaymentOut:
    if not (details.phone or "").strip():
        raise ValidationError("Phone number is required for Paynow payments")
    # reference may be a plain order reference; only a matching booking gets an attempt row
    booking = db.get(Booking, details.reference)
    if booking is not None and user is not None and booking.user_id != user.id:
        raise ValidationError("Booking not found or unauthorized")

    details.return_url = details.return_url or f"{settings.PUBLIC_URL}/payment-status"
    result = adapter.initiate(details)
    if not (result.success and result.redirect_url):
        raise ProviderError(result.error or "Payment initialization failed", provider=adapter.provider)

    if booking is None:
        logger.info("Paynow payment initiated for reference=%s with no booking; nothing stored", details.reference)
    else:
        payment = Payment(
            id=str(uuid.uuid4()),
            booking_id=booking.id,
            provider=adapter.provider,
            amount=Decimal(str(details.amount)),
            status="pending",
            reference=details.reference,
            poll_url=result.poll_url,
            details_json=json.dumps({"hash": result.hash, "instructions": result.instructions, "method": details.method}),
        )
        db.add(payment)
        _start_attempt(db, booking, adapter.provider, result.hash)
        log_audit(db, actor=user.id if user else "public", action="payment.initiated", entity_type="payment",
                  entity_id=payment.id, details={"provider": adapter.provider, "booking_id": booking.id})
        db.commit()
        logger.info("Paynow payment %s stored for booking=%s", payment.id, booking.id)

    return PaynowPaymentOut(
        success=True,
        redirectUrl=result.redirect_url,
        pollUrl=result.poll_url,
        reference=details.reference,
        instructions=result.instructions,
    )


def start_card_payment(db: Session, adapter: StripeAdapter, user: User | None, details: PaymentDetails) -> tuple[Booking, str]:
    """Create the intent and record the attempt. Returns the booking and the client secret."""
    if user is None:
        raise AuthenticationError("No active session found")
    booking = db.query(Booking).filter(Booking.id == details.reference, Booking.user_id == user.id).first()
    if not booking:
        raise ValidationError("Booking not found or unauthorized")

    details.metadata = {**(details.metadata or {}), "userId": user.id}
    intent = adapter.initiate(details)
    if not intent.client_secret:
        raise ProviderError("No client secret returned", provider=adapter.provider)

    payment = Payment(
        id=str(uuid.uuid4()),
        booking_id=booking.id,
        provider=adapter.provider,
        amount=Decimal(str(details.amount)),
        status="processing",
        reference=details.reference,
        payment_intent_id=intent.id,
        details_json=json.dumps({"client_secret": intent.client_secret, "amount_minor": intent.amount}),
    )
    db.add(payment)
    _start_attempt(db, booking, adapter.provider, intent.id)
    log_audit(db, actor=user.id, action="payment.initiated", entity_type="payment",
              entity_id=payment.id, details={"provider": adapter.provider, "booking_id": booking.id, "intent": intent.id})
    db.commit()
    logger.info("Stripe payment %s stored for booking=%s intent=%s", payment.id, booking.id, intent.id)
    return booking, intent.client_secret


def _process_stripe(db: Session, adapter: StripeAdapter, details: PaymentDetails, user: User | None) -> StripePaymentOut:
    booking, client_secret = start_card_payment(db, adapter, user, details)
    return StripePaymentOut(
        success=True,
        clientSecret=client_secret,
        redirectUrl=f"/dashboard/payment?booking_id={booking.id}",
    )


# provider tag -> checkout flow; a new provider adds an adapter and an entry here
CHECKOUT_FLOWS = {
    "paynow": _process_paynow,
    "stripe": _process_stripe,
}


def process_payment(
    db: Session,
    provider: str,
    details: PaymentDetails,
    *,
    adapters: dict[str, PaymentAdapter],
    user: User | None = None,
) -> PaynowPaymentOut | StripePaymentOut:
    """Run one payment attempt through the selected provider.

    Required fields are checked before anything touches the network. Failures are
    logged, passed to ``details.error_callback`` if given, and re-raised; nothing is
    retried, so each call is exactly one attempt.
    """
    logger.info("Processing payment via %s reference=%s", provider, details.reference)
    try:
        _validate(details)
        flow = CHECKOUT_FLOWS.get(provider)
        if flow is None:
            raise ValidationError(f"Unsupported payment provider: {provider}")
        adapter = adapters.get(provider)
        if adapter is None:
            raise ConfigurationError(f"{provider} is not configured", provider=provider)
        response = flow(db, adapter, details, user)
    except Exception as e:
        db.rollback()
        logger.error("Payment processing error via %s reference=%s: %s", provider, details.reference, e)
        if details.error_callback:
            details.error_callback(e)
        raise

    if details.success_callback:
        details.success_callback()
    return response


def _settle_polled(db: Session, payment: Payment, outcome: PollOutcome) -> None:
    if not outcome.terminal or payment.status in TERMINAL_STATUSES:
        return
    reconcile_payment(
        db,
        booking_id=payment.booking_id,
        payment_id=payment.id,
        outcome=outcome.state,
        source="poller",
        details={"status": outcome.status},
    )


def check_payment_status(db: Session, adapter: PaynowAdapter, poll_url: str) -> PollOutcome:
    """Poll the provider and settle the matching payment once the outcome is terminal.

    Provider and transport failures come back as state="error"; they are not raised.
    """
    if not (poll_url or "").strip():
        raise ValidationError("Missing poll URL")
    if not adapter.client.is_gateway_url(poll_url):
        raise ValidationError("Poll URL does not belong to Paynow")

    outcome = adapter.poll(poll_url)
    logger.info("Poll %s -> state=%s status=%s", poll_url, outcome.state, outcome.status)
    if not outcome.terminal:
        return outcome

    payment = (
        db.query(Payment)
        .filter(Payment.poll_url == poll_url)
        .order_by(Payment.created_at.desc())
        .first()
    )
    if not payment:
        logger.warning("No payment row for poll url %s", poll_url)
        return outcome
    _settle_polled(db, payment, outcome)
    return outcome


def check_payment(db: Session, adapter: PaynowAdapter, payment_id: str, user: User | None = None) -> tuple[Payment, PollOutcome]:
    """Poll one stored Paynow attempt by id, using the poll URL saved when it was initiated."""
    payment = db.get(Payment, payment_id)
    if payment is not None and user is not None:
        booking = db.get(Booking, payment.booking_id)
        if booking is None or booking.user_id != user.id:
            payment = None
    if payment is None:
        raise NotFoundError("Payment not found")
    if payment.provider != "paynow" or not payment.poll_url:
        raise ValidationError("Payment has no Paynow poll URL")
    if payment.status in TERMINAL_STATUSES:
        # already settled; report the stored result without another round trip
        state = "paid" if payment.status == "completed" else "failed"
        return payment, PollOutcome(state=state, status=payment.status)

    outcome = adapter.poll(payment.poll_url)
    logger.info("Poll payment=%s -> state=%s status=%s", payment.id, outcome.state, outcome.status)
    _settle_polled(db, payment, outcome)
    db.refresh(payment)
    return payment, outcome


def confirm_card_payment(db: Session, adapter: StripeAdapter, user: User, booking_id: str, payment_intent_id: str) -> dict:
    """Client-side signal that the card widget finished; verified against Stripe before it counts."""
    booking = db.query(Booking).filter(Booking.id == booking_id, Booking.user_id == user.id).first()
    if not booking:
        raise ValidationError("Booking not found or unauthorized")

    intent = adapter.retrieve_intent(payment_intent_id)
    if intent.metadata.get("bookingId") != booking.id:
        raise ValidationError("Payment intent does not belong to this booking")

    payment = db.query(Payment).filter(Payment.payment_intent_id == intent.id).first()
    applied = False
    if intent.status == "succeeded":
        applied = reconcile_payment(db, booking_id=booking.id, payment_id=payment.id if payment else None,
                                    outcome="paid", source=f"client:{user.id}", details={"intent": intent.id})
    elif intent.status == "canceled":
        applied = reconcile_payment(db, booking_id=booking.id, payment_id=payment.id if payment else None,
                                    outcome="failed", source=f"client:{user.id}", details={"intent": intent.id})
    else:
        logger.info("Card confirmation for booking=%s with intent status %s; nothing to settle", booking.id, intent.status)

    db.refresh(booking)
    return {"bookingId": booking.id, "status": booking.status, "paymentStatus": booking.payment_status, "applied": applied}


STRIPE_EVENT_OUTCOMES = {
    "payment_intent.succeeded": "paid",
    "payment_intent.payment_failed": "failed",
    "payment_intent.canceled": "failed",
}


def handle_stripe_event(db: Session, event) -> bool:
    outcome = STRIPE_EVENT_OUTCOMES.get(event["type"])
    if not outcome:
        return False
    intent = event["data"]["object"]
    payment = db.query(Payment).filter(Payment.payment_intent_id == intent["id"]).first()
    booking_id = payment.booking_id if payment else (intent.get("metadata") or {}).get("bookingId")
    if not booking_id:
        logger.warning("Stripe event %s for unknown intent %s", event["type"], intent["id"])
        return False
    return reconcile_payment(db, booking_id=booking_id, payment_id=payment.id if payment else None,
                             outcome=outcome, source="stripe", details={"event": event["type"], "intent": intent["id"]})


def handle_paynow_result(db: Session, values: dict) -> bool:
    """Status update Paynow posts to the result URL. The hash must already be verified."""
    reference = values.get("reference") or ""
    poll_url = values.get("pollurl") or ""
    q = db.query(Payment).filter(Payment.provider == "paynow")
    q = q.filter(Payment.poll_url == poll_url) if poll_url else q.filter(Payment.reference == reference)
    payment = q.order_by(Payment.created_at.desc()).first()
    if not payment:
        logger.warning("Paynow result for unknown payment reference=%s", reference)
        return False
    outcome = classify_status(values.get("status", ""))
    if outcome == "pending":
        return False
    return reconcile_payment(db, booking_id=payment.booking_id, payment_id=payment.id, outcome=outcome,
                             source="paynow", details={"status": values.get("status"), "paynowreference": values.get("paynowreference")})
