"""Plan catalogue lookups."""

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from creditwise.billing.models import Plan


def get_plan_by_price_id(session: Session, price_id: str | None) -> Plan | None:
    """Find the plan that sells a Stripe price (monthly or yearly)."""
    if not price_id:
        return None
    return session.scalar(
        select(Plan).where(
            or_(
                Plan.stripe_monthly_price_id == price_id,
                Plan.stripe_yearly_price_id == price_id,
            )
        )
    )


def get_plan_by_slug(session: Session, slug: str) -> Plan | None:
    """Find an active plan by slug."""
    return session.scalar(select(Plan).where(Plan.slug == slug, Plan.is_active.is_(True)))


def price_for_interval(plan: Plan, interval: str) -> str | None:
    """Stripe price id for a billing interval (monthly/yearly)."""
    if interval == "monthly":
        return plan.stripe_monthly_price_id
    if interval == "yearly":
        return plan.stripe_yearly_price_id
    return None
