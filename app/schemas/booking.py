from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional

class BookingCreate(BaseModel):
    destinationId: Optional[str] = None
    eventId: Optional[str] = None
    totalPrice: Decimal = Field(gt=0)
    numberOfPeople: int = 1
    contactName: str = ""
    contactEmail: str = ""  # plain str to allow .local and other dev domains
    contactPhone: str = ""
    preferredDate: Optional[str] = None

class PaymentOut(BaseModel):
    id: str
    provider: str
    amount: Decimal
    currency: str
    status: str
    reference: str
    pollUrl: Optional[str] = None
    paymentIntentId: Optional[str] = None
    createdAt: Optional[str] = None

class BookingOut(BaseModel):
    id: str
    status: str
    paymentStatus: str
    totalPrice: Decimal
    numberOfPeople: int = 1
    destinationId: Optional[str] = None
    eventId: Optional[str] = None
    contactName: str = ""
    contactEmail: str = ""
    contactPhone: str = ""
    preferredDate: Optional[str] = None
    paymentGateway: Optional[str] = None
    confirmationDate: Optional[str] = None
    createdAt: Optional[str] = None
    payments: List[PaymentOut] = []
