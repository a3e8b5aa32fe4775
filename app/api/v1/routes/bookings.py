from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.user import User
from app.models.booking import Booking
from app.schemas.booking import BookingCreate, BookingOut, PaymentOut
from app.services.booking_service import create_booking, list_user_bookings, get_user_booking, booking_payments

router = APIRouter(tags=["bookings"])

def _iso(dt):
    return dt.isoformat() if dt else None

def booking_out(b: Booking, payments=None) -> BookingOut:
    return BookingOut(
        id=b.id,
        status=b.status,
        paymentStatus=b.payment_status,
        totalPrice=b.total_price,
        numberOfPeople=b.number_of_people,
        destinationId=b.destination_id,
        eventId=b.event_id,
        contactName=b.contact_name,
        contactEmail=b.contact_email,
        contactPhone=b.contact_phone,
        preferredDate=b.preferred_date,
        paymentGateway=b.payment_gateway,
        confirmationDate=_iso(b.confirmation_date),
        createdAt=_iso(b.created_at),
        payments=[
            PaymentOut(
                id=p.id, provider=p.provider, amount=p.amount, currency=p.currency, status=p.status,
                reference=p.reference, pollUrl=p.poll_url, paymentIntentId=p.payment_intent_id,
                createdAt=_iso(p.created_at),
            )
            for p in (payments or [])
        ],
    )

@router.post("/bookings", response_model=BookingOut)
def create(body: BookingCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    try:
        booking = create_booking(
            db, user,
            total_price=body.totalPrice,
            number_of_people=body.numberOfPeople,
            destination_id=body.destinationId,
            event_id=body.eventId,
            contact_name=body.contactName,
            contact_email=body.contactEmail,
            contact_phone=body.contactPhone,
            preferred_date=body.preferredDate,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return booking_out(booking)

@router.get("/bookings", response_model=list[BookingOut])
def my_bookings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [booking_out(b) for b in list_user_bookings(db, user)]

@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    b = get_user_booking(db, user, booking_id)
    if not b:
        raise HTTPException(status_code=404, detail="Not found")
    return booking_out(b, booking_payments(db, b))
