from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Union


class PaymentItem(BaseModel):
    name: str
    amount: Decimal


class PaymentDetailsIn(BaseModel):
    # Presence is checked by the orchestrator so a missing field is a ValidationError, not a 422.
    amount: Optional[Decimal] = None
    reference: str = ""
    email: str = ""
    phone: Optional[str] = None
    items: Optional[List[PaymentItem]] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    returnUrl: Optional[str] = None
    method: Optional[str] = None  # paynow express checkout: ecocash|onemoney


class ProcessPaymentRequest(BaseModel):
    provider: str
    details: PaymentDetailsIn


class PaynowPaymentOut(BaseModel):
    provider: Literal["paynow"] = "paynow"
    success: bool
    redirectUrl: str
    pollUrl: Optional[str] = None
    reference: str
    instructions: Optional[str] = None


class StripePaymentOut(BaseModel):
    provider: Literal["stripe"] = "stripe"
    success: bool
    clientSecret: str
    redirectUrl: str


PaymentResponse = Union[PaynowPaymentOut, StripePaymentOut]


class PaymentStatusRequest(BaseModel):
    pollUrl: str = ""


class PaymentStatusOut(BaseModel):
    paid: bool
    status: str
    state: Literal["pending", "paid", "failed", "error"]
    error: Optional[str] = None


class CardConfirmRequest(BaseModel):
    bookingId: str
    paymentIntentId: str


class CardConfirmOut(BaseModel):
    bookingId: str
    status: str
    paymentStatus: str
    applied: bool


# Function-boundary bodies (same field names the browser client sends)

class CreateIntentRequest(BaseModel):
    bookingId: str = ""
    amount: Optional[Decimal] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CreatePaynowRequest(BaseModel):
    email: str = ""
    phone: Optional[str] = None
    amount: Optional[Decimal] = None
    reference: str = ""
    items: Optional[List[PaymentItem]] = None
    returnUrl: str = ""


class PaymentCheckOut(PaymentStatusOut):
    paymentId: str
    paymentStatus: str
