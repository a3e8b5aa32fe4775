import uuid
from decimal import Decimal

import pytest

from app.models.audit_log import AuditLog
from app.models.booking import Booking
from app.models.payment import Payment
from app.services.reconciliation_service import reconcile_payment


def _attempt(db, booking, status="processing", provider="stripe"):
    p = Payment(id=str(uuid.uuid4()), booking_id=booking.id, provider=provider, amount=Decimal("120.00"),
                status=status, reference=booking.id)
    db.add(p)
    db.commit()
    return p


def _booking(db, booking_id):
    db.expire_all()
    return db.get(Booking, booking_id)


def test_paid_confirms_booking_and_payment(db, booking):
    p = _attempt(db, booking)
    assert reconcile_payment(db, booking_id=booking.id, payment_id=p.id, outcome="paid", source="stripe") is True

    b = _booking(db, booking.id)
    assert (b.status, b.payment_status) == ("confirmed", "completed")
    assert db.get(Payment, p.id).status == "completed"


def test_client_confirm_and_poller_race_first_wins(db, booking):
    p = _attempt(db, booking)
    assert reconcile_payment(db, booking_id=booking.id, payment_id=p.id, outcome="paid", source="client:u1")
    first_confirmed = _booking(db, booking.id).confirmation_date

    assert reconcile_payment(db, booking_id=booking.id, payment_id=p.id, outcome="paid", source="poller") is False
    assert reconcile_payment(db, booking_id=booking.id, payment_id=p.id, outcome="failed", source="stripe") is False

    b = _booking(db, booking.id)
    assert (b.status, b.payment_status) == ("confirmed", "completed")
    assert b.confirmation_date == first_confirmed
    assert db.query(AuditLog).filter(AuditLog.entity_id == booking.id).count() == 1


def test_late_failure_for_settled_attempt_leaves_booking_alone(db, booking):
    p = _attempt(db, booking)
    reconcile_payment(db, booking_id=booking.id, payment_id=p.id, outcome="failed", source="poller")
    assert _booking(db, booking.id).payment_status == "failed"

    # the failed attempt reporting "paid" later does not reopen it
    assert reconcile_payment(db, booking_id=booking.id, payment_id=p.id, outcome="paid", source="paynow") is False
    assert _booking(db, booking.id).payment_status == "failed"


def test_paid_retry_confirms_previously_failed_booking(db, booking):
    first = _attempt(db, booking)
    reconcile_payment(db, booking_id=booking.id, payment_id=first.id, outcome="failed", source="poller")

    retry = _attempt(db, booking)
    assert reconcile_payment(db, booking_id=booking.id, payment_id=retry.id, outcome="paid", source="stripe")
    b = _booking(db, booking.id)
    assert (b.status, b.payment_status) == ("confirmed", "completed")
    assert db.get(Payment, first.id).status == "failed"


def test_failure_never_downgrades_completed_booking(db, booking):
    paid = _attempt(db, booking)
    reconcile_payment(db, booking_id=booking.id, payment_id=paid.id, outcome="paid", source="stripe")

    other = _attempt(db, booking)
    assert reconcile_payment(db, booking_id=booking.id, payment_id=other.id, outcome="failed", source="poller")
    assert _booking(db, booking.id).payment_status == "completed"
    assert db.get(Payment, other.id).status == "failed"


def test_without_payment_row_updates_booking_only(db, booking):
    assert reconcile_payment(db, booking_id=booking.id, payment_id=None, outcome="paid", source="stripe")
    assert _booking(db, booking.id).status == "confirmed"
    assert reconcile_payment(db, booking_id=booking.id, payment_id=None, outcome="paid", source="stripe") is False


def test_rejects_non_terminal_outcome(db, booking):
    with pytest.raises(ValueError):
        reconcile_payment(db, booking_id=booking.id, payment_id=None, outcome="pending", source="poller")
