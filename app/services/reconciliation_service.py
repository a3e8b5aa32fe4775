"""Single writer for terminal payment outcomes.

Client confirmation, the status poller and both provider webhooks all report here.
Updates are conditional on the row still being open, so the first terminal signal
wins and every later one changes nothing.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.payment import Payment, OPEN_STATUSES
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)

# a paid retry may still confirm a booking whose earlier attempt failed
_BOOKING_OPEN = {
    "paid": ("pending", "processing", "failed"),
    "failed": ("pending", "processing"),
}


def reconcile_payment(
    db: Session,
    *,
    booking_id: str,
    payment_id: str | None,
    outcome: str,
    source: str,
    details: dict | None = None,
) -> bool:
    """Apply a "paid" or "failed" outcome. Returns True if any row changed."""
    if outcome not in _BOOKING_OPEN:
        raise ValueError(f"not a terminal outcome: {outcome}")

    now = datetime.now(timezone.utc)
    if outcome == "paid":
        payment_values = {"status": "completed"}
        booking_values = {"payment_status": "completed", "status": "confirmed", "confirmation_date": now}
    else:
        payment_values = {"status": "failed"}
        booking_values = {"payment_status": "failed"}

    payment_rows = 0
    if payment_id:
        payment_rows = db.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status.in_(OPEN_STATUSES))
            .values(**payment_values, updated_at=now)
        ).rowcount

    # A signal for an attempt that was already settled must not touch the booking
    booking_rows = 0
    if payment_rows or not payment_id:
        booking_rows = db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.payment_status.in_(_BOOKING_OPEN[outcome]))
            .values(**booking_values, updated_at=now)
        ).rowcount

    applied = bool(payment_rows or booking_rows)
    if applied:
        action = "payment.completed" if outcome == "paid" else "payment.failed"
        log_audit(db, actor=source, action=action, entity_type="booking", entity_id=booking_id,
                  details={"payment_id": payment_id, **(details or {})})
        logger.info("Reconciled booking=%s payment=%s outcome=%s source=%s", booking_id, payment_id, outcome, source)
    else:
        logger.info("Ignored %s signal from %s for booking=%s payment=%s (already settled)", outcome, source, booking_id, payment_id)
    db.commit()
    return applied
