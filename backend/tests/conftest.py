"""Shared fixtures.

- A file-backed SQLite database per test (the credit award runs in worker
  threads, which in-memory SQLite cannot share)
- FakeStripeGateway: in-process stand-in for the Stripe API
- Profile and subscription factories
- An API client with JWT helpers
"""

import hashlib
import hmac
import itertools
import json
import threading
import time
from collections.abc import Callable, Generator, Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from creditwise.api.main import create_app
from creditwise.auth.models import Profile, UserRole
from creditwise.billing.models import Plan
from creditwise.exceptions import PaymentGatewayError
from creditwise.payments.gateway import StripeGateway
from creditwise.services import Services, build_services
from creditwise.settings import Settings
from creditwise.storage.db import Database

JWT_SECRET = "test-jwt-secret-key-with-enough-length-1234"
WEBHOOK_SECRET = "whsec_test_secret"
APP_URL = "https://app.example.com"


# =============================================================================
# STRIPE FAKE
# =============================================================================


class FakeStripeGateway(StripeGateway):
    """StripeGateway with every API call served from memory.

    Webhook verification is inherited, so signed payloads go through the
    real stripe.WebhookSignature check.
    """

    def __init__(self):
        super().__init__(api_key=None, webhook_secret=WEBHOOK_SECRET, client=object())
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.customers: dict[str, dict[str, Any]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.balance_credits: list[dict[str, Any]] = []
        self.checkout_sessions: list[dict[str, Any]] = []
        self.portal_sessions: list[dict[str, Any]] = []
        self.failing_customers: set[str] = set()
        self.search_calls = 0

    def _next_id(self, prefix: str) -> str:
        with self._lock:
            return f"{prefix}_{next(self._ids)}"

    def _fail_if_broken(self, customer_id: str) -> None:
        if customer_id in self.failing_customers:
            raise PaymentGatewayError(f"Stripe call failed for {customer_id}")

    def add_customer(
        self,
        customer_id: str,
        email: str | None = None,
        user_id: str | None = None,
        deleted: bool = False,
    ) -> dict[str, Any]:
        customer = {
            "id": customer_id,
            "object": "customer",
            "email": email,
            "name": None,
            "metadata": {"user_id": user_id} if user_id else {},
            "deleted": deleted,
        }
        with self._lock:
            self.customers[customer_id] = customer
        return customer

    def add_subscription(self, subscription: dict[str, Any]) -> dict[str, Any]:
        self.subscriptions[subscription["id"]] = subscription
        return subscription

    # ---- customers ----

    def find_customer_by_user(self, user_id: str) -> str | None:
        with self._lock:
            self.search_calls += 1
            customers = list(self.customers.values())
        for customer in customers:
            if customer["metadata"].get("user_id") == user_id and not customer.get("deleted"):
                return customer["id"]
        return None

    def create_customer(self, user_id: str, email: str | None, name: str | None) -> str:
        customer = self.add_customer(self._next_id("cus"), email=email, user_id=user_id)
        customer["name"] = name
        return customer["id"]

    def retrieve_customer(self, customer_id: str) -> dict[str, Any] | None:
        self._fail_if_broken(customer_id)
        customer = self.customers.get(customer_id)
        if customer is None or customer.get("deleted"):
            return None
        return dict(customer)

    def create_balance_credit(
        self,
        customer_id: str,
        amount_cents: int,
        description: str,
        metadata: dict[str, str],
    ) -> str:
        self._fail_if_broken(customer_id)
        transaction_id = self._next_id("cbtxn")
        with self._lock:
            self.balance_credits.append(
                {
                    "id": transaction_id,
                    "customer": customer_id,
                    "amount": -abs(amount_cents),
                    "currency": self.currency,
                    "description": description,
                    "metadata": metadata,
                }
            )
        return transaction_id

    # ---- subscriptions ----

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        subscription = json.loads(json.dumps(self.subscriptions[subscription_id]))
        customer_id = subscription["customer"]
        if isinstance(customer_id, str) and customer_id in self.customers:
            subscription["customer"] = dict(self.customers[customer_id])
        return subscription

    def iter_subscriptions(self, status: str) -> Iterator[dict[str, Any]]:
        for subscription in list(self.subscriptions.values()):
            if subscription.get("status") == status:
                yield subscription

    # ---- checkout / portal ----

    def create_checkout_session(self, user_id: str, price_id: str, success_url: str, cancel_url: str, **kwargs):
        session_id = self._next_id("cs_test")
        self.checkout_sessions.append(
            {
                "id": session_id,
                "user_id": user_id,
                "price_id": price_id,
                "success_url": success_url,
                "cancel_url": cancel_url,
                **kwargs,
            }
        )
        return {"id": session_id, "url": f"https://checkout.stripe.com/c/pay/{session_id}"}

    def create_portal_session(self, customer_id: str, return_url: str, configuration: str | None = None) -> str:
        self.portal_sessions.append({"customer": customer_id, "return_url": return_url})
        return f"https://billing.stripe.com/p/session/{customer_id}"


def stripe_subscription(
    subscription_id: str = "sub_1",
    customer: str | dict[str, Any] = "cus_1",
    status: str = "active",
    price_id: str | None = "price_pro_monthly",
    metadata: dict[str, Any] | None = None,
    period_on_items: bool = False,
) -> dict[str, Any]:
    """Stripe-shaped subscription object.

    period_on_items places the period bounds on the first item, as newer
    API versions do.
    """
    start, end = 1767225600, 1769904000
    item: dict[str, Any] = {"id": f"si_{subscription_id}", "price": {"id": price_id} if price_id else None}
    subscription: dict[str, Any] = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "cancel_at_period_end": False,
        "metadata": metadata or {},
        "items": {"object": "list", "data": [item] if price_id else []},
    }
    if period_on_items:
        item["current_period_start"] = start
        item["current_period_end"] = end
    else:
        subscription["current_period_start"] = start
        subscription["current_period_end"] = end
    return subscription


def stripe_event(event_type: str, obj: dict[str, Any], event_id: str = "evt_1") -> dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "api_version": "2024-06-20",
        "data": {"object": obj},
    }


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


# =============================================================================
# DATABASE / SERVICES
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite:///{tmp_path / 'creditwise.db'}",
        jwt_secret_key=JWT_SECRET,
        stripe_webhook_secret=WEBHOOK_SECRET,
        app_url=APP_URL,
    )


@pytest.fixture
def database(settings: Settings) -> Generator[Database, None, None]:
    db = Database(settings.database_url, echo=False)
    db.create_tables()
    yield db
    db.drop_tables()
    db.dispose()


@pytest.fixture
def gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def services(settings: Settings, database: Database, gateway: FakeStripeGateway) -> Services:
    return build_services(settings, database=database, gateway=gateway)


@pytest.fixture
def make_profile(database: Database) -> Callable[..., Profile]:
    """Factory for profiles (the identity provider's users)."""

    def _make(
        user_id: str,
        email: str | None = None,
        full_name: str | None = None,
        role: UserRole = UserRole.USER,
    ) -> Profile:
        profile = Profile(
            id=user_id,
            email=email or f"{user_id}@example.com",
            full_name=full_name,
            role=role.value,
        )
        with database.session() as session:
            session.add(profile)
        return profile

    return _make


@pytest.fixture
def pro_plan(database: Database) -> Plan:
    plan = Plan(
        slug="pro",
        name="Pro",
        stripe_monthly_price_id="price_pro_monthly",
        stripe_yearly_price_id="price_pro_yearly",
    )
    with database.session() as session:
        session.add(plan)
    return plan


# =============================================================================
# API
# =============================================================================


def auth_headers(user_id: str) -> dict[str, str]:
    token = jwt.encode({"sub": user_id}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(services: Services) -> Generator[TestClient, None, None]:
    with TestClient(create_app(services)) as test_client:
        yield test_client
