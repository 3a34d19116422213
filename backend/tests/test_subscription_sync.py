"""Tests for the Stripe -> local subscription synchronizer."""

import pytest
from sqlalchemy import select

from conftest import stripe_event, stripe_subscription
from creditwise.billing.models import Subscription, SubscriptionStatus, map_stripe_status
from creditwise.billing.sync import MAX_REPORTED_ERRORS
from creditwise.exceptions import PaymentGatewayError, WebhookPayloadError
from creditwise.payments.events import StripeEvent, SubscriptionSnapshot
from creditwise.referral.models import Referral, ReferralCode, ReferralStatus


def _snapshot(**kwargs) -> SubscriptionSnapshot:
    return SubscriptionSnapshot.model_validate(stripe_subscription(**kwargs))


def _event(event_type, obj, event_id="evt_1") -> StripeEvent:
    return StripeEvent.model_validate(stripe_event(event_type, obj, event_id))


def _subscriptions(database) -> list[Subscription]:
    with database.session() as session:
        return list(session.scalars(select(Subscription).order_by(Subscription.id)))


@pytest.fixture
def users(make_profile):
    make_profile("user-1", email="one@example.com")
    make_profile("user-2", email="two@example.com")


# =============================================================================
# OWNER RESOLUTION
# =============================================================================


class TestResolveUserId:
    def test_subscription_metadata_wins(self, services, users, gateway):
        gateway.add_customer("cus_1", user_id="user-2")

        snapshot = _snapshot(metadata={"user_id": "user-1"})

        assert services.synchronizer.resolve_user_id(snapshot) == "user-1"

    def test_customer_metadata(self, services, users, gateway):
        gateway.add_customer("cus_1", user_id="user-2")

        assert services.synchronizer.resolve_user_id(_snapshot()) == "user-2"

    def test_expanded_customer_needs_no_lookup(self, services, users, gateway):
        customer = {"id": "cus_9", "metadata": {"userId": "user-2"}}
        gateway.failing_customers.add("cus_9")

        assert services.synchronizer.resolve_user_id(_snapshot(customer=customer)) == "user-2"

    def test_existing_local_subscription(self, services, users, gateway, database):
        gateway.add_customer("cus_1")
        with database.session() as session:
            session.add(Subscription(id="sub_old", user_id="user-1", stripe_customer_id="cus_1", status="canceled"))

        assert services.synchronizer.resolve_user_id(_snapshot(subscription_id="sub_new")) == "user-1"

    def test_customer_email(self, services, users, gateway):
        gateway.add_customer("cus_1", email="two@example.com")

        assert services.synchronizer.resolve_user_id(_snapshot()) == "user-2"

    def test_deleted_customer_is_ignored(self, services, users, gateway):
        gateway.add_customer("cus_1", email="two@example.com", user_id="user-2", deleted=True)

        assert services.synchronizer.resolve_user_id(_snapshot()) is None

    def test_unresolvable(self, services, users, gateway):
        gateway.add_customer("cus_1", email="stranger@example.com")

        assert services.synchronizer.resolve_user_id(_snapshot()) is None


# =============================================================================
# UPSERT
# =============================================================================


class TestUpsert:
    def test_insert_then_update(self, services, users, pro_plan, database):
        services.synchronizer.upsert_subscription(_snapshot(), "user-1")
        services.synchronizer.upsert_subscription(_snapshot(status="past_due"), "user-1")

        [subscription] = _subscriptions(database)
        assert subscription.id == "sub_1"
        assert subscription.status == "past_due"
        assert subscription.plan_id == pro_plan.id
        assert subscription.stripe_customer_id == "cus_1"
        assert subscription.stripe_price_id == "price_pro_monthly"
        assert subscription.current_period_start is not None

    def test_replay_gives_same_state(self, services, users, database):
        snapshot = _snapshot(status="trialing")
        services.synchronizer.upsert_subscription(snapshot, "user-1")
        first = _subscriptions(database)[0]
        services.synchronizer.upsert_subscription(snapshot, "user-1")
        second = _subscriptions(database)[0]

        assert (first.status, first.plan_id, first.current_period_end) == (
            second.status,
            second.plan_id,
            second.current_period_end,
        )

    def test_unknown_price_has_no_plan(self, services, users, database):
        services.synchronizer.upsert_subscription(_snapshot(price_id="price_unknown"), "user-1")

        assert _subscriptions(database)[0].plan_id is None

    @pytest.mark.parametrize(
        "stripe_status, expected",
        [
            ("active", SubscriptionStatus.ACTIVE),
            ("incomplete_expired", SubscriptionStatus.INCOMPLETE_EXPIRED),
            ("paused", SubscriptionStatus.PAUSED),
            ("something_new", SubscriptionStatus.INCOMPLETE),
            (None, SubscriptionStatus.INCOMPLETE),
        ],
    )
    def test_status_mapping(self, stripe_status, expected):
        assert map_stripe_status(stripe_status) is expected


# =============================================================================
# WEBHOOK EVENTS
# =============================================================================


class TestHandleEvent:
    def test_subscription_updated(self, services, users, gateway, database):
        gateway.add_customer("cus_1", user_id="user-1")
        event = _event("customer.subscription.updated", stripe_subscription(status="canceled"))

        assert services.synchronizer.handle_event(event) == "synced"
        assert _subscriptions(database)[0].status == "canceled"

    def test_unresolvable_owner_is_dropped(self, services, users, gateway, database):
        gateway.add_customer("cus_1")
        event = _event("customer.subscription.created", stripe_subscription())

        assert services.synchronizer.handle_event(event) == "dropped"
        assert _subscriptions(database) == []

    def test_unhandled_type(self, services):
        event = _event("invoice.paid", {"id": "in_1"})

        assert services.synchronizer.handle_event(event) == "ignored"

    def test_payment_failed_is_acknowledged(self, services):
        event = _event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1", "customer": "cus_1"})

        assert services.synchronizer.handle_event(event) == "ignored"

    def test_malformed_object(self, services):
        event = _event("customer.subscription.updated", {"status": "active"})

        with pytest.raises(WebhookPayloadError):
            services.synchronizer.handle_event(event)

    def test_gateway_failure_propagates(self, services, users, gateway):
        gateway.failing_customers.add("cus_1")
        event = _event("customer.subscription.updated", stripe_subscription())

        with pytest.raises(PaymentGatewayError):
            services.synchronizer.handle_event(event)


class TestCheckoutCompleted:
    @pytest.fixture
    def pending_referral(self, services, users, database):
        with database.session() as session:
            session.add(ReferralCode(user_id="user-2", code="ABCD1234"))
        assert services.referral_service.register_signup("user-1", "ABCD1234").success

    def _checkout(self, mode="subscription"):
        return _event(
            "checkout.session.completed",
            {"id": "cs_1", "mode": mode, "subscription": "sub_1", "customer": "cus_1", "metadata": {}},
        )

    def test_syncs_and_completes_referral(self, services, pending_referral, gateway, database):
        gateway.add_customer("cus_1", user_id="user-1")
        gateway.add_subscription(stripe_subscription(metadata={"user_id": "user-1"}))

        assert services.synchronizer.handle_event(self._checkout()) == "synced"

        assert _subscriptions(database)[0].user_id == "user-1"
        with database.session() as session:
            referral = session.scalar(select(Referral))
        assert referral.status == ReferralStatus.COMPLETED.value
        assert services.credit_ledger.get_balance("user-1")["balance"] == 15
        assert services.credit_ledger.get_balance("user-2")["balance"] == 15

    def test_duplicate_delivery_awards_once(self, services, pending_referral, gateway, database):
        gateway.add_customer("cus_1", user_id="user-1")
        gateway.add_subscription(stripe_subscription(metadata={"user_id": "user-1"}))

        services.synchronizer.handle_event(self._checkout())
        services.synchronizer.handle_event(self._checkout())

        assert len(_subscriptions(database)) == 1
        assert len(gateway.balance_credits) == 2
        assert services.credit_ledger.get_balance("user-2") == {"balance": 15, "total_earned": 15, "total_spent": 0}

    def test_payment_mode_is_ignored(self, services, gateway, database):
        assert services.synchronizer.handle_event(self._checkout(mode="payment")) == "ignored"
        assert _subscriptions(database) == []

    def test_unresolvable_checkout_is_dropped(self, services, pending_referral, gateway, database):
        gateway.add_customer("cus_1")
        gateway.add_subscription(stripe_subscription())

        assert services.synchronizer.handle_event(self._checkout()) == "dropped"
        with database.session() as session:
            assert session.scalar(select(Referral)).status == ReferralStatus.PENDING.value


# =============================================================================
# SWEEP
# =============================================================================


class TestSweep:
    def test_counts_and_errors(self, services, users, gateway, database):
        gateway.add_customer("cus_1", user_id="user-1")
        gateway.add_customer("cus_2", email="two@example.com")
        gateway.add_customer("cus_3")
        gateway.add_subscription(stripe_subscription("sub_a", "cus_1", status="active"))
        gateway.add_subscription(stripe_subscription("sub_b", "cus_2", status="trialing"))
        gateway.add_subscription(stripe_subscription("sub_c", "cus_3", status="past_due"))
        gateway.add_subscription(stripe_subscription("sub_d", "cus_1", status="active", price_id=None))
        gateway.add_subscription(stripe_subscription("sub_e", "cus_1", status="canceled"))

        report = services.synchronizer.sweep()

        assert report.synced == 2
        assert report.failed == 2
        assert sorted(report.errors) == ["sub_c: could not resolve user", "sub_d: no price found"]
        assert [s.id for s in _subscriptions(database)] == ["sub_a", "sub_b"]
        assert report.message == "Sync complete: 2 synced, 2 failed"

    def test_one_failure_does_not_stop_the_sweep(self, services, users, gateway, database):
        gateway.add_customer("cus_1", user_id="user-1")
        gateway.add_customer("cus_bad")
        gateway.failing_customers.add("cus_bad")
        gateway.add_subscription(stripe_subscription("sub_bad", "cus_bad"))
        gateway.add_subscription(stripe_subscription("sub_ok", "cus_1"))

        report = services.synchronizer.sweep()

        assert report.synced == 1
        assert report.failed == 1
        assert report.errors[0].startswith("sub_bad:")

    def test_error_list_is_capped(self, services, users, gateway):
        for i in range(MAX_REPORTED_ERRORS + 5):
            gateway.add_subscription(stripe_subscription(f"sub_{i}", "cus_nobody"))

        report = services.synchronizer.sweep()

        assert report.failed == MAX_REPORTED_ERRORS + 5
        assert len(report.errors) == MAX_REPORTED_ERRORS
        assert report.as_dict()["failed"] == MAX_REPORTED_ERRORS + 5
