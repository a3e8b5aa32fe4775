import logging
from datetime import datetime, timezone, timedelta
from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError
from app.db.session import SessionLocal
from app.core.config import settings
from app.models.payment import Payment
from app.services.payment_providers import PaynowAdapter
from app.services.errors import PaymentError
from app.services.payment_service import check_payment_status

logger = logging.getLogger(__name__)

def pending_paynow_payments(db: Session, max_age_minutes: int, limit: int) -> list[Payment]:
    since = datetime.now(timezone.utc) - timedelta(minutes=max_age_minutes)
    return db.query(Payment).filter(
        Payment.provider == "paynow",
        Payment.status == "pending",
        Payment.poll_url != None,
        Payment.poll_url != "",
        Payment.created_at >= since,
    ).order_by(Payment.created_at.asc()).limit(limit).all()

def poll_pending_payments(adapter: PaynowAdapter, limit: int = 50, db: Session | None = None) -> dict:
    own_session = db is None
    db = db or SessionLocal()
    try:
        try:
            payments = pending_paynow_payments(db, settings.PAYNOW_POLL_MAX_AGE_MINUTES, limit)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        counts = {"polled": 0, "paid": 0, "failed": 0, "error": 0, "pending": 0}
        # read poll urls first; reconciliation commits expire the loaded rows
        for poll_url in [p.poll_url for p in payments]:
            counts["polled"] += 1
            try:
                outcome = check_payment_status(db, adapter, poll_url)
            except PaymentError as e:
                # one unpollable row must not stall the rest of the sweep
                db.rollback()
                logger.warning("Skipping poll url %s: %s", poll_url, e)
                counts["error"] += 1
                continue
            counts[outcome.state] += 1
        if counts["polled"]:
            logger.info("Background poll: %s", counts)
        return counts
    finally:
        if own_session:
            db.close()
