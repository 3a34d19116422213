"""Tests for parsing Stripe webhook payloads into snapshots."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from conftest import stripe_event, stripe_subscription
from creditwise.payments.events import (
    CheckoutSessionSnapshot,
    StripeEvent,
    SubscriptionSnapshot,
    metadata_user_id,
)

PERIOD_START = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("period_on_items", [False, True])
def test_subscription_period_from_either_location(period_on_items):
    snapshot = SubscriptionSnapshot.model_validate(stripe_subscription(period_on_items=period_on_items))

    assert snapshot.current_period_start == PERIOD_START
    assert snapshot.current_period_end > snapshot.current_period_start


def test_subscription_with_customer_id():
    snapshot = SubscriptionSnapshot.model_validate(stripe_subscription(customer="cus_42"))

    assert snapshot.id == "sub_1"
    assert snapshot.customer_id == "cus_42"
    assert snapshot.customer is None
    assert snapshot.price_id == "price_pro_monthly"
    assert snapshot.status == "active"
    assert snapshot.cancel_at_period_end is False


def test_subscription_with_expanded_customer():
    customer = {"id": "cus_42", "email": "x@example.com", "metadata": {"user_id": "user-9"}}
    snapshot = SubscriptionSnapshot.model_validate(stripe_subscription(customer=customer))

    assert snapshot.customer_id == "cus_42"
    assert snapshot.customer.email == "x@example.com"
    assert snapshot.customer.user_id == "user-9"


def test_subscription_without_items():
    snapshot = SubscriptionSnapshot.model_validate(stripe_subscription(price_id=None))

    assert snapshot.price_id is None


def test_subscription_metadata_user():
    snapshot = SubscriptionSnapshot.model_validate(stripe_subscription(metadata={"user_id": "user-1"}))

    assert snapshot.user_id == "user-1"


def test_subscription_missing_id_is_rejected():
    raw = stripe_subscription()
    del raw["id"]

    with pytest.raises(ValidationError):
        SubscriptionSnapshot.model_validate(raw)


@pytest.mark.parametrize(
    "metadata, expected",
    [
        ({"user_id": "u1"}, "u1"),
        ({"userId": "u2"}, "u2"),
        ({"user_id": "", "userId": "u3"}, "u3"),
        ({}, None),
        (None, None),
    ],
)
def test_metadata_user_id(metadata, expected):
    assert metadata_user_id(metadata) == expected


class TestCheckoutSession:
    def test_subscription_id(self):
        checkout = CheckoutSessionSnapshot.model_validate(
            {"id": "cs_1", "mode": "subscription", "subscription": "sub_1", "customer": "cus_1"}
        )

        assert checkout.subscription_id == "sub_1"
        assert checkout.customer_id == "cus_1"

    def test_expanded_subscription(self):
        checkout = CheckoutSessionSnapshot.model_validate(
            {"id": "cs_1", "mode": "subscription", "subscription": {"id": "sub_7"}, "customer": None}
        )

        assert checkout.subscription_id == "sub_7"
        assert checkout.customer_id is None

    def test_payment_mode(self):
        checkout = CheckoutSessionSnapshot.model_validate({"id": "cs_1", "mode": "payment"})

        assert checkout.mode == "payment"
        assert checkout.subscription_id is None


def test_event_envelope():
    event = StripeEvent.model_validate(stripe_event("customer.subscription.updated", stripe_subscription()))

    assert event.type == "customer.subscription.updated"
    assert event.object["id"] == "sub_1"
