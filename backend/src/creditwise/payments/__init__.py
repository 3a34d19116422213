"""Stripe integration: API gateway and webhook event parsing."""

from creditwise.payments.events import (
    CheckoutSessionSnapshot,
    CustomerSnapshot,
    StripeEvent,
    SubscriptionSnapshot,
)
from creditwise.payments.gateway import StripeGateway

__all__ = [
    "CheckoutSessionSnapshot",
    "CustomerSnapshot",
    "StripeEvent",
    "StripeGateway",
    "SubscriptionSnapshot",
]
