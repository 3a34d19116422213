"""Stripe -> local subscription synchronization.

Two entry points share one resolve-and-upsert core:
- handle_event(): a single verified webhook event
- sweep(): admin-triggered pass over every live Stripe subscription

Ownership of a Stripe subscription is resolved in priority order:
1. subscription metadata user_id
2. customer metadata user_id
3. an existing local subscription with the same Stripe customer
4. the customer's email in the profile store
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from creditwise.auth.models import Profile
from creditwise.billing.models import Subscription, map_stripe_status
from creditwise.billing.plans import get_plan_by_price_id
from creditwise.exceptions import WebhookPayloadError
from creditwise.logging_config import get_logger
from creditwise.payments.events import (
    CheckoutSessionSnapshot,
    CustomerSnapshot,
    StripeEvent,
    SubscriptionSnapshot,
)
from creditwise.payments.gateway import StripeGateway
from creditwise.referral.service import ReferralService
from creditwise.storage.constraints import violated_constraint
from creditwise.storage.db import Database

logger = get_logger(__name__)

SWEEP_STATUSES = ("active", "trialing", "past_due")
MAX_REPORTED_ERRORS = 20

SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)


@dataclass
class SyncReport:
    """Result of a sweep."""

    synced: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.failed += 1
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)

    @property
    def message(self) -> str:
        return f"Sync complete: {self.synced} synced, {self.failed} failed"

    def as_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "synced": self.synced,
            "failed": self.failed,
            "errors": self.errors,
        }


class SubscriptionSynchronizer:
    """Mirror Stripe subscriptions into the local subscriptions table."""

    def __init__(self, database: Database, gateway: StripeGateway, referral_service: ReferralService):
        self.db = database
        self.gateway = gateway
        self.referral_service = referral_service
        self.logger = get_logger(__name__)

    # ==================== RESOLUTION ====================

    def _customer(self, snapshot: SubscriptionSnapshot) -> CustomerSnapshot | None:
        if snapshot.customer is None:
            raw = self.gateway.retrieve_customer(snapshot.customer_id)
            if raw is None:
                return None
            snapshot.customer = CustomerSnapshot.model_validate(raw)
        if snapshot.customer.deleted:
            return None
        return snapshot.customer

    def resolve_user_id(self, snapshot: SubscriptionSnapshot) -> str | None:
        """Find the local user owning a Stripe subscription.

        Args:
            snapshot: Parsed Stripe subscription

        Returns:
            User ID, or None if no step matched
        """
        if snapshot.user_id:
            return snapshot.user_id

        customer = self._customer(snapshot)
        if customer and customer.user_id:
            return customer.user_id

        with self.db.session() as session:
            user_id = session.scalar(
                select(Subscription.user_id)
                .where(Subscription.stripe_customer_id == snapshot.customer_id)
                .limit(1)
            )
            if user_id:
                return user_id

            if customer and customer.email:
                return session.scalar(
                    select(Profile.id).where(Profile.email == customer.email).limit(1)
                )

        return None

    # ==================== UPSERT ====================

    def _apply(self, session: Session, snapshot: SubscriptionSnapshot, user_id: str) -> Subscription:
        plan = get_plan_by_price_id(session, snapshot.price_id)

        subscription = session.get(Subscription, snapshot.id)
        if subscription is None:
            subscription = Subscription(id=snapshot.id)
            session.add(subscription)

        subscription.user_id = user_id
        subscription.plan_id = plan.id if plan else None
        subscription.stripe_customer_id = snapshot.customer_id
        subscription.stripe_price_id = snapshot.price_id
        subscription.status = map_stripe_status(snapshot.status).value
        subscription.current_period_start = snapshot.current_period_start
        subscription.current_period_end = snapshot.current_period_end
        subscription.cancel_at_period_end = snapshot.cancel_at_period_end
        return subscription

    def upsert_subscription(self, snapshot: SubscriptionSnapshot, user_id: str) -> Subscription:
        """Insert or update the local row keyed by the Stripe subscription id.

        Args:
            snapshot: Parsed Stripe subscription
            user_id: Resolved owner

        Returns:
            The stored subscription
        """
        try:
            with self.db.session() as session:
                subscription = self._apply(session, snapshot, user_id)
        except IntegrityError as e:
            # Concurrent delivery inserted the row first; update it instead
            if violated_constraint(e) != Subscription.__table__.primary_key.name:
                raise
            with self.db.session() as session:
                subscription = self._apply(session, snapshot, user_id)

        self.logger.info(
            "subscription_synced",
            subscription_id=snapshot.id,
            user_id=user_id,
            status=subscription.status,
        )
        return subscription

    def sync_subscription(self, snapshot: SubscriptionSnapshot) -> str | None:
        """Resolve the owner and upsert; returns the user id or None if dropped."""
        user_id = self.resolve_user_id(snapshot)
        if not user_id:
            # TODO: surface unattributed subscriptions in an admin report
            self.logger.warning(
                "subscription_owner_unresolved",
                subscription_id=snapshot.id,
                customer_id=snapshot.customer_id,
            )
            return None

        self.upsert_subscription(snapshot, user_id)
        return user_id

    # ==================== WEBHOOKS ====================

    def handle_event(self, event: StripeEvent) -> str:
        """Apply one verified webhook event.

        Args:
            event: Parsed event envelope

        Returns:
            "synced", "dropped" or "ignored"

        Raises:
            WebhookPayloadError: The event object does not parse
            PaymentGatewayError, SQLAlchemyError: Infrastructure failures,
                left to the caller so Stripe redelivers
        """
        try:
            if event.type == "checkout.session.completed":
                return self._handle_checkout_completed(CheckoutSessionSnapshot.model_validate(event.object))

            if event.type in SUBSCRIPTION_EVENTS:
                snapshot = SubscriptionSnapshot.model_validate(event.object)
                return "synced" if self.sync_subscription(snapshot) else "dropped"
        except ValidationError as e:
            raise WebhookPayloadError(f"Unexpected {event.type} payload: {e}") from e

        if event.type == "invoice.payment_failed":
            invoice = event.object
            self.logger.warning(
                "invoice_payment_failed",
                invoice_id=invoice.get("id"),
                subscription_id=invoice.get("subscription"),
                customer_id=invoice.get("customer"),
            )
            return "ignored"

        self.logger.info("stripe_webhook_unhandled", event_type=event.type, event_id=event.id)
        return "ignored"

    def _handle_checkout_completed(self, checkout: CheckoutSessionSnapshot) -> str:
        if checkout.mode != "subscription" or not checkout.subscription_id:
            self.logger.info("checkout_not_subscription", session_id=checkout.id, mode=checkout.mode)
            return "ignored"

        snapshot = SubscriptionSnapshot.model_validate(
            self.gateway.retrieve_subscription(checkout.subscription_id)
        )
        user_id = self.sync_subscription(snapshot)
        if not user_id:
            return "dropped"

        self.referral_service.complete_on_subscription(user_id)
        return "synced"

    # ==================== SWEEP ====================

    def sweep(self) -> SyncReport:
        """Reconcile all active, trialing and past-due Stripe subscriptions.

        Failures are collected per subscription and never stop the sweep.

        Returns:
            Counts plus up to MAX_REPORTED_ERRORS error messages
        """
        report = SyncReport()

        for status in SWEEP_STATUSES:
            for raw in self.gateway.iter_subscriptions(status):
                subscription_id = raw.get("id", "unknown")
                try:
                    snapshot = SubscriptionSnapshot.model_validate(raw)
                    if not snapshot.price_id:
                        report.add_error(f"{subscription_id}: no price found")
                        continue
                    if not self.sync_subscription(snapshot):
                        report.add_error(f"{subscription_id}: could not resolve user")
                        continue
                    report.synced += 1
                except Exception as e:
                    self.logger.error("subscription_sweep_failed", subscription_id=subscription_id, error=str(e))
                    report.add_error(f"{subscription_id}: {e}")

        self.logger.info("subscription_sweep_finished", synced=report.synced, failed=report.failed)
        return report
