import uuid
from decimal import Decimal
from sqlalchemy.orm import Session
from app.models.user import User
from app.models.booking import Booking
from app.models.payment import Payment
from app.services.audit_service import log_audit

def create_booking(
    db: Session,
    booker: User,
    *,
    total_price: Decimal,
    number_of_people: int = 1,
    destination_id: str | None = None,
    event_id: str | None = None,
    contact_name: str = "",
    contact_email: str = "",
    contact_phone: str = "",
    preferred_date: str | None = None,
) -> Booking:
    if number_of_people < 1:
        raise ValueError("number_of_people must be >= 1")
    if total_price is None or Decimal(total_price) <= 0:
        raise ValueError("total_price must be > 0")
    if not destination_id and not event_id:
        raise ValueError("destination_id or event_id is required")

    booking = Booking(
        id=str(uuid.uuid4()),
        user_id=booker.id,
        destination_id=destination_id,
        event_id=event_id,
        status="pending",
        payment_status="pending",
        total_price=Decimal(total_price),
        number_of_people=number_of_people,
        contact_name=contact_name or booker.full_name,
        contact_email=(contact_email or booker.email).lower(),
        contact_phone=contact_phone,
        preferred_date=preferred_date,
    )
    db.add(booking)
    # Payment rows are created per attempt by the payment flow, not here.
    log_audit(db, actor=booker.id, action="booking.created", entity_type="booking", entity_id=booking.id,
              details={"total_price": str(booking.total_price)})
    db.commit()
    db.refresh(booking)
    return booking

def list_user_bookings(db: Session, user: User) -> list[Booking]:
    return db.query(Booking).filter(Booking.user_id == user.id).order_by(Booking.created_at.desc()).all()

def get_user_booking(db: Session, user: User, booking_id: str) -> Booking | None:
    return db.query(Booking).filter(Booking.id == booking_id, Booking.user_id == user.id).first()

def booking_payments(db: Session, booking: Booking) -> list[Payment]:
    return db.query(Payment).filter(Payment.booking_id == booking.id).order_by(Payment.created_at.asc()).all()
