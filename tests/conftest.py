"""Shared fixtures.

- Settings come from env vars set here, before any app import.
- Each test gets a fresh in-memory SQLite database (StaticPool, one connection).
- Provider adapters are real adapter classes over fake transports, injected
  through app.dependency_overrides; nothing reaches Paynow or Stripe.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("PUBLIC_URL", "https://zimtravel.test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api import deps
from app.core.security import create_access_token
from app.db.session import Base, get_db
from app.main import app
from app.models.booking import Booking
from app.models.user import User
from app.services.paynow_client import PaynowClient, PaynowConfig, build_hash
from app.services.payment_providers import PaynowAdapter, StripeAdapter

# Import models so metadata has every table
from app.models import audit_log, payment  # noqa: F401

BROWSER_URL = "https://www.paynow.co.zw/Payment/ConfirmPayment/9510"
POLL_URL = "https://www.paynow.co.zw/Interface/CheckPayment/?guid=3cb27f4b-b3ef-4d1f-9178-5e5e62a43995"
INTEGRATION_KEY = "3e9fed89-60e1-4ce5-ab6e-6b1eb2d4f977"


class FakePaynowClient(PaynowClient):
    """Real hashing and parsing; _post answers from canned data instead of the network."""

    def __init__(self):
        super().__init__(PaynowConfig(integration_id="1201", integration_key=INTEGRATION_KEY))
        self.calls = []
        self.init_response = {"status": "Ok", "browserurl": BROWSER_URL, "pollurl": POLL_URL, "hash": "A1B2C3"}
        self.poll_status = "Sent"
        self.poll_exc = None

    @property
    def poll_calls(self):
        return [c for c in self.calls if not c[0].startswith(self.cfg.base_url)]

    def _post(self, url, fields=None):
        self.calls.append((url, fields))
        if url.startswith(self.cfg.base_url):
            return dict(self.init_response)
        if self.poll_exc:
            raise self.poll_exc
        return {"reference": "ref", "paynowreference": "9510", "amount": "120.00", "status": self.poll_status, "pollurl": url}

    def signed(self, values: dict) -> dict:
        values = dict(values)
        values["hash"] = build_hash(values, self.cfg.integration_key)
        return values


class FakeStripe:
    """Stands in for stripe.PaymentIntent create/retrieve."""

    def __init__(self):
        self.created = []
        self.intents = {}
        self.fail_with = None

    def create(self, **kwargs):
        if self.fail_with:
            raise self.fail_with
        self.created.append(kwargs)
        n = len(self.created)
        intent = {
            "id": f"pi_{n}",
            "client_secret": f"pi_{n}_secret_x",
            "amount": kwargs["amount"],
            "status": "requires_payment_method",
            "metadata": kwargs.get("metadata", {}),
        }
        self.intents[intent["id"]] = intent
        return intent

    def retrieve(self, intent_id, **kwargs):
        return self.intents[intent_id]


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def write_log(engine):
    """Every INSERT/UPDATE/DELETE as (statement, rowcount)."""
    writes = []

    @event.listens_for(engine, "after_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):
        verb = statement.lstrip().split(" ", 1)[0].upper()
        if verb in ("INSERT", "UPDATE", "DELETE"):
            writes.append((statement, cursor.rowcount))

    yield writes
    event.remove(engine, "after_cursor_execute", _record)


@pytest.fixture
def paynow_client():
    return FakePaynowClient()


@pytest.fixture
def paynow_adapter(paynow_client):
    return PaynowAdapter(paynow_client, result_url="https://api.zimtravel.test/api/v1/webhooks/paynow")


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr("stripe.PaymentIntent.create", fake.create)
    monkeypatch.setattr("stripe.PaymentIntent.retrieve", fake.retrieve)
    return fake


@pytest.fixture
def stripe_adapter(fake_stripe):
    return StripeAdapter(api_key="sk_test_123", webhook_secret="whsec_test")


@pytest.fixture
def user(db):
    u = User(id=str(uuid.uuid4()), email="tendai@example.com", full_name="Tendai Moyo", role="customer", is_active=True)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = User(id=str(uuid.uuid4()), email="rudo@example.com", full_name="Rudo Ncube", role="customer", is_active=True)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def booking(db, user):
    b = Booking(
        id=str(uuid.uuid4()),
        user_id=user.id,
        destination_id=str(uuid.uuid4()),
        status="pending",
        payment_status="pending",
        total_price=Decimal("120.00"),
        number_of_people=2,
        contact_name=user.full_name,
        contact_email=user.email,
        contact_phone="0771234567",
    )
    db.add(b)
    db.commit()
    return b


@pytest.fixture
def client(engine, paynow_adapter, stripe_adapter):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _get_db():
        session = Session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_paynow_adapter] = lambda: paynow_adapter
    app.dependency_overrides[deps.get_stripe_adapter] = lambda: stripe_adapter
    app.dependency_overrides[deps.get_payment_adapters] = lambda: {"paynow": paynow_adapter, "stripe": stripe_adapter}
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}

