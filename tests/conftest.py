"""
Test fixtures for hydrus-billing tests.

Provides database session fixtures, signed Stripe event builders,
and sample catalog/customer rows.
"""

import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-hydrus-billing-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from app.models import (
    BillingInterval,
    Customer,
    Price,
    PricingModel,
    Product,
    Subscription,
)
from app.services.dunning import DunningNotice
from app.services.subscription_sync import SubscriptionSynchronizer

# Use in-memory SQLite for unit tests (fast, isolated)
TEST_DATABASE_URL = "sqlite:///:memory:"

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


# ============== STRIPE EVENTS ==============


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for payload."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


@pytest.fixture
def signed_event() -> Callable[..., Tuple[bytes, str]]:
    """Factory: (event_type, object, event_id) -> (raw body, signature header)."""

    def _build(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1") -> Tuple[bytes, str]:
        body = json.dumps({
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": 1700000000,
            "data": {"object": obj},
        }).encode("utf-8")
        return body, sign_payload(body)

    return _build


def subscription_payload(
    sub_id: str = "sub_test_1",
    status: str = "active",
    customer: str = "cus_test_1",
    price: str = "price_test_1",
    quantity: int = 1,
    **overrides: Any,
) -> Dict[str, Any]:
    obj = {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "current_period_start": 1700000000,
        "current_period_end": 1702592000,
        "items": {
            "object": "list",
            "data": [{"id": "si_test_1", "price": {"id": price}, "quantity": quantity}],
        },
        "metadata": {},
    }
    obj.update(overrides)
    return obj


def invoice_payload(
    invoice_id: str = "in_test_1",
    subscription: Optional[str] = "sub_test_1",
    **overrides: Any,
) -> Dict[str, Any]:
    obj = {
        "id": invoice_id,
        "object": "invoice",
        "subscription": subscription,
        "customer": "cus_test_1",
        "customer_email": "jane@example.com",
        "customer_name": "Jane Doe",
        "amount_due": 1999,
        "currency": "usd",
    }
    obj.update(overrides)
    return obj


@pytest.fixture
def subscription_obj() -> Callable[..., Dict[str, Any]]:
    return subscription_payload


@pytest.fixture
def invoice_obj() -> Callable[..., Dict[str, Any]]:
    return invoice_payload


# ============== SYNCHRONIZER ==============


class RecordingNotifier:
    """Dunning notifier that records notices instead of sending email."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.notices: List[DunningNotice] = []

    def notify_payment_failed(self, notice: DunningNotice) -> bool:
        self.notices.append(notice)
        if self.fail:
            raise RuntimeError("email provider down")
        return True


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def synchronizer(test_session: Session, notifier: RecordingNotifier) -> SubscriptionSynchronizer:
    return SubscriptionSynchronizer(test_session, notifier=notifier, webhook_secret=WEBHOOK_SECRET)


# ============== API CLIENT ==============


@pytest.fixture
def stripe_client() -> MagicMock:
    """Fake StripeClient returning canned ids."""
    client = MagicMock()
    client.products.create.return_value = MagicMock(id="prod_new_1")
    client.prices.create.return_value = MagicMock(id="price_new_1")
    client.customers.create.return_value = MagicMock(id="cus_new_1")
    return client


@pytest.fixture(scope="function")
def client(test_engine, notifier, stripe_client):
    """Create test client with test database, fake notifier and fake Stripe client."""
    from app.main import app
    from app.api import deps
    from app.db import get_session

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    def override_get_synchronizer(session: Session = Depends(get_session)):
        return SubscriptionSynchronizer(session, notifier=notifier, webhook_secret=WEBHOOK_SECRET)

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[deps.get_synchronizer] = override_get_synchronizer
    app.dependency_overrides[deps.get_stripe] = lambda: stripe_client

    client = TestClient(app)
    yield client

    # Clean up
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """Bearer token for an admin session."""
    from app.core.jwt import create_access_token

    token = create_access_token("admin@example.com")
    return {"Authorization": f"Bearer {token}"}


# ============== SAMPLE DATA ==============


@pytest.fixture
def sample_customer(test_session: Session) -> Customer:
    customer = Customer(
        stripe_customer_id="cus_test_1",
        email="jane@example.com",
        name="Jane Doe",
    )
    test_session.add(customer)
    test_session.commit()
    test_session.refresh(customer)
    return customer


@pytest.fixture
def sample_product(test_session: Session) -> Product:
    product = Product(
        stripe_product_id="prod_test_1",
        name="Pro Plan",
        description="Everything in Pro",
        pricing_model=PricingModel.STANDARD_SUBSCRIPTION,
    )
    test_session.add(product)
    test_session.commit()
    test_session.refresh(product)
    return product


@pytest.fixture
def sample_price(test_session: Session, sample_product: Product) -> Price:
    price = Price(
        stripe_price_id="price_test_1",
        product_id=sample_product.id,
        amount=1999,
        currency="USD",
        billing_interval=BillingInterval.MONTHLY,
    )
    test_session.add(price)
    test_session.commit()
    test_session.refresh(price)
    return price


@pytest.fixture
def sample_subscription(
    test_session: Session, sample_customer: Customer, sample_product: Product, sample_price: Price
) -> Subscription:
    subscription = Subscription(
        stripe_subscription_id="sub_test_1",
        customer_id=sample_customer.id,
        product_id=sample_product.id,
        price_id=sample_price.id,
        status="ACTIVE",
        quantity=1,
    )
    test_session.add(subscription)
    test_session.commit()
    test_session.refresh(subscription)
    return subscription
