import json
from decimal import Decimal

import pytest
import stripe

from app.models.booking import Booking
from app.models.payment import Payment
from app.services.errors import AuthenticationError, ConfigurationError, ProviderError, TransportError, ValidationError
from app.services.paynow_client import PaynowError
from app.services.payment_providers import PaymentDetails
from app.services.payment_service import process_payment

from conftest import BROWSER_URL, POLL_URL


class SpyAdapter:
    def __init__(self, provider):
        self.provider = provider
        self.calls = 0

    def initiate(self, details):
        self.calls += 1
        raise AssertionError("adapter must not be called")


def _details(booking, **overrides):
    values = dict(amount=Decimal("120.00"), reference=booking.id, email="tendai@example.com", phone="0771234567")
    values.update(overrides)
    return PaymentDetails(**values)


@pytest.mark.parametrize("provider", ["paynow", "stripe"])
@pytest.mark.parametrize("missing", [
    {"amount": None},
    {"amount": Decimal("0")},
    {"reference": ""},
    {"email": ""},
    {"email": "   "},
])
def test_missing_required_fields_fail_before_any_provider_call(db, booking, user, provider, missing):
    spy = SpyAdapter(provider)
    with pytest.raises(ValidationError):
        process_payment(db, provider, _details(booking, **missing), adapters={provider: spy}, user=user)
    assert spy.calls == 0
    assert db.query(Payment).count() == 0


def test_paynow_requires_phone(db, booking, paynow_adapter, paynow_client):
    with pytest.raises(ValidationError, match="Phone number is required"):
        process_payment(db, "paynow", _details(booking, phone=None), adapters={"paynow": paynow_adapter})
    assert paynow_client.calls == []


def test_stripe_requires_session(db, booking, stripe_adapter, fake_stripe):
    with pytest.raises(AuthenticationError):
        process_payment(db, "stripe", _details(booking), adapters={"stripe": stripe_adapter}, user=None)
    assert fake_stripe.created == []


def test_unknown_provider_is_rejected(db, booking, paynow_adapter):
    with pytest.raises(ValidationError, match="Unsupported payment provider: ecocash"):
        process_payment(db, "ecocash", _details(booking), adapters={"paynow": paynow_adapter})


def test_known_provider_without_adapter_is_a_configuration_error(db, booking):
    with pytest.raises(ConfigurationError):
        process_payment(db, "paynow", _details(booking), adapters={})


def test_paynow_success_returns_redirect_and_stores_pending_attempt(db, booking, paynow_adapter, paynow_client):
    result = process_payment(db, "paynow", _details(booking), adapters={"paynow": paynow_adapter})

    assert result.provider == "paynow"
    assert result.success is True
    assert result.redirectUrl == BROWSER_URL
    assert result.pollUrl == POLL_URL
    assert result.reference == booking.id

    (url, fields), = paynow_client.calls
    assert url.endswith("/initiatetransaction")
    assert fields["amount"] == "120.00"
    assert fields["additionalinfo"] == "Zimbabwe Travel Booking"
    assert fields["returnurl"] == f"https://zimtravel.test/payment-status?reference={booking.id}"
    assert fields["resulturl"] == "https://api.zimtravel.test/api/v1/webhooks/paynow"

    p = db.query(Payment).one()
    assert (p.provider, p.status, p.poll_url, p.reference) == ("paynow", "pending", POLL_URL, booking.id)
    db.refresh(booking)
    assert booking.payment_status == "processing"
    assert booking.payment_gateway == "paynow"
    assert booking.payment_gateway_reference == "A1B2C3"


def test_paynow_line_items_are_sent_as_given(db, booking, paynow_adapter, paynow_client):
    items = [{"name": "Victoria Falls tour", "amount": Decimal("80.00")}, {"name": "Park fees", "amount": Decimal("40.00")}]
    process_payment(db, "paynow", _details(booking, items=items, return_url="https://zimtravel.test/done?x=1"),
                    adapters={"paynow": paynow_adapter})
    (_, fields), = paynow_client.calls
    assert fields["additionalinfo"] == "Victoria Falls tour, Park fees"
    assert fields["amount"] == "120.00"
    assert fields["returnurl"] == f"https://zimtravel.test/done?x=1&reference={booking.id}"


def test_paynow_express_checkout_uses_remote_transaction(db, booking, paynow_adapter, paynow_client):
    paynow_client.init_response = {"status": "Ok", "pollurl": POLL_URL, "instructions": "Dial *151*2*4#", "hash": "H"}
    result = process_payment(db, "paynow", _details(booking, method="ecocash"), adapters={"paynow": paynow_adapter})
    (url, fields), = paynow_client.calls
    assert url.endswith("/remotetransaction")
    assert fields["phone"] == "0771234567"
    assert fields["method"] == "ecocash"
    assert result.instructions == "Dial *151*2*4#"
    assert result.redirectUrl.startswith("https://zimtravel.test/payment-status?reference=")


def test_paynow_provider_failure_raises_with_message_and_stores_nothing(db, booking, paynow_adapter, paynow_client):
    paynow_client.init_response = {"status": "Error", "error": "Invalid amount field"}
    errors = []
    with pytest.raises(ProviderError, match="Invalid amount field"):
        process_payment(db, "paynow", _details(booking, error_callback=errors.append), adapters={"paynow": paynow_adapter})
    assert len(errors) == 1 and isinstance(errors[0], ProviderError)
    assert db.query(Payment).count() == 0
    db.refresh(booking)
    assert booking.payment_status == "pending"


def test_paynow_transport_failure_raises_transport_error(db, booking, paynow_adapter, paynow_client, monkeypatch):
    def boom(**kwargs):
        raise PaynowError("Paynow unreachable: timed out")
    monkeypatch.setattr(paynow_client, "initiate", boom)
    with pytest.raises(TransportError):
        process_payment(db, "paynow", _details(booking), adapters={"paynow": paynow_adapter})
    assert db.query(Payment).count() == 0


def test_paynow_reference_without_booking_initiates_but_stores_nothing(db, paynow_adapter, paynow_client, write_log):
    details = PaymentDetails(amount=Decimal("10"), reference="ZIM-REF-42", email="a@b.co", phone="0771")
    result = process_payment(db, "paynow", details, adapters={"paynow": paynow_adapter})

    assert result.success is True
    assert result.reference == "ZIM-REF-42"
    assert result.pollUrl == POLL_URL
    assert len(paynow_client.calls) == 1
    assert db.query(Payment).count() == 0
    assert write_log == []


def test_paynow_rejects_someone_elses_booking_before_network(db, booking, other_user, paynow_adapter, paynow_client):
    with pytest.raises(ValidationError, match="unauthorized"):
        process_payment(db, "paynow", _details(booking), adapters={"paynow": paynow_adapter}, user=other_user)
    assert paynow_client.calls == []


def test_success_callback_runs_once(db, booking, paynow_adapter):
    calls = []
    process_payment(db, "paynow", _details(booking, success_callback=lambda: calls.append(1)),
                    adapters={"paynow": paynow_adapter})
    assert calls == [1]


def test_stripe_success_returns_client_secret_and_records_intent(db, booking, user, stripe_adapter, fake_stripe):
    result = process_payment(db, "stripe", _details(booking, metadata={"source": "web"}),
                             adapters={"stripe": stripe_adapter}, user=user)

    assert result.provider == "stripe"
    assert result.clientSecret == "pi_1_secret_x"
    assert result.redirectUrl == f"/dashboard/payment?booking_id={booking.id}"

    created, = fake_stripe.created
    assert created["amount"] == 12000
    assert created["currency"] == "usd"
    assert created["automatic_payment_methods"] == {"enabled": True}
    assert created["metadata"] == {"source": "web", "userId": user.id, "bookingId": booking.id}
    assert created["api_key"] == "sk_test_123"

    p = db.query(Payment).one()
    assert (p.provider, p.status, p.payment_intent_id) == ("stripe", "processing", "pi_1")
    assert json.loads(p.details_json)["client_secret"] == "pi_1_secret_x"
    db.refresh(booking)
    assert booking.payment_status == "processing"


def test_stripe_rejects_someone_elses_booking(db, booking, other_user, stripe_adapter, fake_stripe):
    with pytest.raises(ValidationError, match="unauthorized"):
        process_payment(db, "stripe", _details(booking), adapters={"stripe": stripe_adapter}, user=other_user)
    assert fake_stripe.created == []


def test_stripe_error_is_reported_through_callback_and_reraised(db, booking, user, stripe_adapter, fake_stripe):
    fake_stripe.fail_with = stripe.CardError("Your card was declined.", param=None, code="card_declined")
    errors = []
    with pytest.raises(ProviderError, match="declined"):
        process_payment(db, "stripe", _details(booking, error_callback=errors.append),
                        adapters={"stripe": stripe_adapter}, user=user)
    assert len(errors) == 1
    assert db.query(Payment).count() == 0


def test_each_call_is_one_attempt(db, booking, user, stripe_adapter, fake_stripe):
    for _ in range(2):
        process_payment(db, "stripe", _details(booking), adapters={"stripe": stripe_adapter}, user=user)
    assert len(fake_stripe.created) == 2
    assert db.query(Payment).filter(Payment.booking_id == booking.id).count() == 2
    assert db.get(Booking, booking.id).payment_status == "processing"
