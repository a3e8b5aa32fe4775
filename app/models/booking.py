from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "refunded")

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), index=True)

    # One of destination_id / event_id is set in practice
    destination_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    event_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="pending")          # pending, confirmed, cancelled, completed
    payment_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, processing, completed, failed, refunded

    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    number_of_people: Mapped[int] = mapped_column(Integer, default=1)

    contact_name: Mapped[str] = mapped_column(String(200), default="")
    contact_email: Mapped[str] = mapped_column(String(320), default="")
    contact_phone: Mapped[str] = mapped_column(String(40), default="")
    preferred_date: Mapped[str | None] = mapped_column(String(10), nullable=True)  # YYYY-MM-DD

    payment_gateway: Mapped[str | None] = mapped_column(String(20), nullable=True)  # stripe|paynow
    payment_gateway_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    confirmation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
