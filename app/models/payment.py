from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

OPEN_STATUSES = ("pending", "processing")
TERMINAL_STATUSES = ("completed", "failed", "refunded")

class Payment(Base):
    """One payment attempt against a booking. Retries add rows, they never reuse one."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    provider: Mapped[str] = mapped_column(String(20))  # stripe|paynow
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, processing, completed, failed, refunded

    reference: Mapped[str] = mapped_column(String(120), default="", index=True)
    poll_url: Mapped[str | None] = mapped_column(String(512), nullable=True, index=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    details_json: Mapped[str] = mapped_column(Text, default="{}")  # provider-specific (e.g. client_secret)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
