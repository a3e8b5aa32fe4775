"""Provider adapters: translate a normalized payment request into one provider's call convention.

Each adapter is built with its credentials and handed to the orchestrator, so a new
provider is a new adapter class plus a registry entry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Protocol

import stripe

from app.services.errors import ProviderError, TransportError
from app.services.paynow_client import PaynowClient, PaynowError

logger = logging.getLogger(__name__)

DEFAULT_ITEM_NAME = "Zimbabwe Travel Booking"

PAID_STATUSES = ("paid", "awaiting delivery", "delivered")
FAILED_STATUSES = ("cancelled", "failed", "disputed")


@dataclass
class PaymentDetails:
    amount: Decimal | float | None
    reference: str
    email: str
    phone: str | None = None
    items: list[dict] | None = None  # [{"name": ..., "amount": ...}]
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    return_url: str | None = None
    method: str | None = None  # Paynow express checkout (ecocash, onemoney); None = web checkout
    success_callback: Callable[[], None] | None = None
    error_callback: Callable[[Exception], None] | None = None


@dataclass
class PaynowInitResult:
    success: bool
    redirect_url: str | None = None
    poll_url: str | None = None
    hash: str | None = None
    instructions: str | None = None
    error: str | None = None


@dataclass
class StripeIntent:
    id: str
    client_secret: str
    amount: int
    status: str
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class PollOutcome:
    """pending | paid | failed | error. A failed poll is "error", never "pending"."""

    state: str
    status: str
    reason: str | None = None

    @property
    def paid(self) -> bool:
        return self.state == "paid"

    @property
    def terminal(self) -> bool:
        return self.state in ("paid", "failed")

    def as_dict(self) -> dict:
        out = {"paid": self.paid, "status": self.status, "state": self.state}
        if self.reason:
            out["error"] = self.reason
        return out


def classify_status(status: str) -> str:
    s = (status or "").strip().lower()
    if s in PAID_STATUSES:
        return "paid"
    if s in FAILED_STATUSES:
        return "failed"
    return "pending"


def to_minor_units(amount) -> int:
    """USD amount -> cents, rounded half-up at the cent boundary (19.999 -> 2000)."""
    cents = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int(cents * 100)


def with_reference(url: str, reference: str) -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}reference={reference}"


class PaymentAdapter(Protocol):
    provider: str

    def initiate(self, details: PaymentDetails) -> Any: ...


class PaynowAdapter:
    provider = "paynow"

    def __init__(self, client: PaynowClient, result_url: str = ""):
        self.client = client
        self.result_url = result_url

    def _items(self, details: PaymentDetails) -> list[dict]:
        if details.items:
            return [{"name": i["name"], "amount": i["amount"]} for i in details.items]
        return [{"name": DEFAULT_ITEM_NAME, "amount": details.amount}]

    def initiate(self, details: PaymentDetails) -> PaynowInitResult:
        """Provider-reported failures come back as success=False; only transport problems raise."""
        return_url = with_reference(details.return_url or "", details.reference)
        result_url = self.result_url or return_url
        items = self._items(details)
        try:
            if details.method:
                data = self.client.initiate_mobile(
                    reference=details.reference, email=details.email, phone=details.phone or "",
                    items=items, return_url=return_url, result_url=result_url, method=details.method,
                )
            else:
                data = self.client.initiate(
                    reference=details.reference, email=details.email,
                    items=items, return_url=return_url, result_url=result_url,
                )
        except PaynowError as e:
            raise TransportError(str(e), provider=self.provider) from e

        logger.info("Paynow initiate reference=%s status=%s items=%d", details.reference, data.get("status"), len(items))
        if data.get("status", "").lower() != "ok":
            return PaynowInitResult(success=False, error=data.get("error") or "Payment initiation failed")
        return PaynowInitResult(
            success=True,
            # express checkout has no browser leg; the customer lands on the status page instead
            redirect_url=data.get("browserurl") or (return_url if details.method else None),
            poll_url=data.get("pollurl"),
            hash=data.get("hash"),
            instructions=data.get("instructions"),
        )

    def poll(self, poll_url: str) -> PollOutcome:
        try:
            data = self.client.poll(poll_url)
        except PaynowError as e:
            logger.warning("Paynow poll failed url=%s: %s", poll_url, e)
            return PollOutcome(state="error", status="error", reason=str(e))
        status = data.get("status", "")
        if status.lower() == "error":
            return PollOutcome(state="error", status="error", reason=data.get("error") or "Paynow reported an error")
        return PollOutcome(state=classify_status(status), status=status)


class StripeAdapter:
    provider = "stripe"

    def __init__(self, api_key: str, webhook_secret: str = "", api_version: str | None = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version

    def _opts(self) -> dict:
        opts = {"api_key": self.api_key}
        if self.api_version:
            opts["stripe_version"] = self.api_version
        return opts

    def initiate(self, details: PaymentDetails) -> StripeIntent:
        metadata = {**(details.metadata or {}), "bookingId": details.reference}
        return self.create_intent(amount=details.amount, metadata=metadata, description=details.description)

    def create_intent(self, *, amount, metadata: dict, description: str | None = None) -> StripeIntent:
        minor = to_minor_units(amount)
        params = {
            "amount": minor,
            "currency": "usd",
            "automatic_payment_methods": {"enabled": True},
            "metadata": {k: str(v) for k, v in metadata.items()},
        }
        if description:
            params["description"] = description
        try:
            intent = stripe.PaymentIntent.create(**params, **self._opts())
        except stripe.APIConnectionError as e:
            raise TransportError(str(e), provider=self.provider) from e
        except stripe.StripeError as e:
            raise ProviderError(e.user_message or str(e), provider=self.provider) from e
        logger.info("Stripe intent created id=%s amount=%d", intent["id"], minor)
        return StripeIntent(id=intent["id"], client_secret=intent["client_secret"], amount=minor, status=intent["status"])

    def retrieve_intent(self, intent_id: str) -> StripeIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, **self._opts())
        except stripe.APIConnectionError as e:
            raise TransportError(str(e), provider=self.provider) from e
        except stripe.StripeError as e:
            raise ProviderError(e.user_message or str(e), provider=self.provider) from e
        return StripeIntent(
            id=intent["id"],
            client_secret=intent["client_secret"],
            amount=intent["amount"],
            status=intent["status"],
            metadata=dict(intent.get("metadata") or {}),
        )

    def construct_event(self, payload: bytes, signature: str):
        # raises ValueError / stripe.SignatureVerificationError on bad input
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
