"""Stripe API gateway.

One StripeGateway is built from settings when the application starts and is
handed to the services that talk to Stripe. Every call returns plain dicts or
ids; Stripe SDK errors are re-raised as PaymentGatewayError.
"""

import json
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

import stripe

from creditwise.exceptions import PaymentGatewayError, WebhookPayloadError, WebhookSignatureError
from creditwise.logging_config import get_logger
from creditwise.payments.events import StripeEvent

logger = get_logger(__name__)

# Stripe-Signature timestamp tolerance in seconds
WEBHOOK_TOLERANCE = 300


def _plain(value: Any) -> Any:
    """Recursively convert Stripe objects into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


class StripeGateway:
    """Thin wrapper over the Stripe client used by billing and credits."""

    def __init__(
        self,
        api_key: str | None,
        webhook_secret: str | None = None,
        currency: str = "usd",
        client: stripe.StripeClient | None = None,
    ):
        """Initialize the gateway.

        Args:
            api_key: Stripe secret key
            webhook_secret: Endpoint signing secret (whsec_...)
            currency: Currency for balance credits
            client: Pre-built client (defaults to one built from api_key)
        """
        if client is None and not api_key:
            raise PaymentGatewayError("Stripe is not configured (missing secret key)")
        self._client = client or stripe.StripeClient(api_key)
        self.webhook_secret = webhook_secret
        self.currency = currency

    @contextmanager
    def _call(self, operation: str, **context: Any) -> Iterator[None]:
        try:
            yield
        except stripe.StripeError as e:
            logger.error("stripe_call_failed", operation=operation, error=str(e), **context)
            raise PaymentGatewayError(f"Stripe {operation} failed: {e}", original_error=e) from e

    # ==================== CUSTOMERS ====================

    def find_customer_by_user(self, user_id: str) -> str | None:
        """Search for a customer tagged with our user id."""
        with self._call("customer_search", user_id=user_id):
            result = self._client.customers.search(
                params={"query": f'metadata["user_id"]:"{user_id}"', "limit": 1}
            )
        return result.data[0].id if result.data else None

    def create_customer(self, user_id: str, email: str | None, name: str | None) -> str:
        """Create a customer tagged with our user id."""
        params: dict[str, Any] = {"metadata": {"user_id": user_id}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name

        with self._call("customer_create", user_id=user_id):
            customer = self._client.customers.create(params=params)

        logger.info("stripe_customer_created", user_id=user_id, customer_id=customer.id)
        return customer.id

    def retrieve_customer(self, customer_id: str) -> dict[str, Any] | None:
        """Fetch a customer; None if it was deleted."""
        with self._call("customer_retrieve", customer_id=customer_id):
            customer = _plain(self._client.customers.retrieve(customer_id))
        if customer.get("deleted"):
            return None
        return customer

    def create_balance_credit(
        self,
        customer_id: str,
        amount_cents: int,
        description: str,
        metadata: dict[str, str],
    ) -> str:
        """Credit a customer's balance.

        Stripe treats a negative balance as credit owed to the customer, so
        the amount is sent negated.

        Returns:
            Balance transaction id
        """
        with self._call("balance_transaction", customer_id=customer_id):
            transaction = self._client.customers.balance_transactions.create(
                customer_id,
                params={
                    "amount": -abs(amount_cents),
                    "currency": self.currency,
                    "description": description,
                    "metadata": metadata,
                },
            )
        return transaction.id

    # ==================== SUBSCRIPTIONS ====================

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Fetch a subscription with its customer expanded."""
        with self._call("subscription_retrieve", subscription_id=subscription_id):
            subscription = self._client.subscriptions.retrieve(
                subscription_id, params={"expand": ["customer"]}
            )
        return _plain(subscription)

    def iter_subscriptions(self, status: str) -> Iterator[dict[str, Any]]:
        """Iterate all subscriptions with the given status (auto-paginated)."""
        with self._call("subscription_list", status=status):
            page = self._client.subscriptions.list(
                params={"status": status, "expand": ["data.customer"], "limit": 100}
            )
            for subscription in page.auto_paging_iter():
                yield _plain(subscription)

    # ==================== CHECKOUT / PORTAL ====================

    def create_checkout_session(
        self,
        user_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: str | None = None,
        customer_email: str | None = None,
        plan_id: int | None = None,
    ) -> dict[str, Any]:
        """Create a subscription-mode Checkout Session.

        The user id goes into both the session and subscription metadata so
        the webhook can attribute the subscription.
        """
        metadata = {"user_id": user_id}
        if plan_id is not None:
            metadata["plan_id"] = str(plan_id)

        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email

        with self._call("checkout_create", user_id=user_id):
            session = self._client.checkout.sessions.create(params=params)

        logger.info("checkout_session_created", user_id=user_id, session_id=session.id)
        return {"id": session.id, "url": session.url}

    def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
        configuration: str | None = None,
    ) -> str:
        """Create a billing portal session and return its URL."""
        params: dict[str, Any] = {"customer": customer_id, "return_url": return_url}
        if configuration:
            params["configuration"] = configuration

        with self._call("portal_create", customer_id=customer_id):
            session = self._client.billing_portal.sessions.create(params=params)
        return session.url

    # ==================== WEBHOOKS ====================

    def construct_event(self, payload: bytes, signature: str) -> StripeEvent:
        """Verify a webhook signature and parse the event envelope.

        Raises:
            WebhookSignatureError: Missing secret/header or bad signature
            WebhookPayloadError: Body is not a well-formed event
        """
        if not self.webhook_secret:
            raise WebhookSignatureError("Stripe webhook secret not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        body = payload.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, tolerance=WEBHOOK_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError("Invalid webhook signature") from e

        try:
            return StripeEvent.model_validate(json.loads(body))
        except ValueError as e:
            raise WebhookPayloadError(f"Malformed webhook payload: {e}") from e
