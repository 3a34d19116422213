"""Billing API endpoints: current subscription, checkout and portal."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select

from creditwise.api.dependencies import get_services
from creditwise.auth.middleware import require_auth
from creditwise.auth.models import Profile
from creditwise.billing.models import LIVE_STATUSES, Plan, Subscription
from creditwise.billing.plans import get_plan_by_price_id, get_plan_by_slug, price_for_interval
from creditwise.services import Services

router = APIRouter(prefix="/billing", tags=["billing"])

FREE_PLAN_SLUG = "free"


# ==================== MODELS ====================


class SubscriptionData(BaseModel):
    id: str
    status: str
    plan: str
    stripe_price_id: str | None = None
    stripe_customer_id: str
    current_period_start: str | None = None
    current_period_end: str | None = None
    cancel_at_period_end: bool


class SubscriptionResponse(BaseModel):
    subscription: SubscriptionData | None = None


class CheckoutRequest(BaseModel):
    plan: str
    interval: Literal["monthly", "yearly"] = "monthly"
    platform: Literal["web", "mobile"] = "web"
    success_url: str | None = None
    cancel_url: str | None = None


class CheckoutResponse(BaseModel):
    checkout_url: str
    session_id: str


class PortalRequest(BaseModel):
    return_url: str | None = None
    configuration: str | None = None


class PortalResponse(BaseModel):
    portal_url: str


# ==================== ENDPOINTS ====================


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(
    user: Profile = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Get the current user's live subscription (active, trialing or past due)."""
    with services.db.session() as session:
        row = session.execute(
            select(Subscription, Plan.slug)
            .outerjoin(Plan, Plan.id == Subscription.plan_id)
            .where(Subscription.user_id == user.id, Subscription.status.in_(LIVE_STATUSES))
            .order_by(Subscription.created_at.desc())
            .limit(1)
        ).first()

        if not row:
            return SubscriptionResponse(subscription=None)

        subscription, plan_slug = row
        if not plan_slug:
            plan = get_plan_by_price_id(session, subscription.stripe_price_id)
            plan_slug = plan.slug if plan else FREE_PLAN_SLUG

    return SubscriptionResponse(
        subscription=SubscriptionData(
            id=subscription.id,
            status=subscription.status,
            plan=plan_slug,
            stripe_price_id=subscription.stripe_price_id,
            stripe_customer_id=subscription.stripe_customer_id,
            current_period_start=(
                subscription.current_period_start.isoformat() if subscription.current_period_start else None
            ),
            current_period_end=(
                subscription.current_period_end.isoformat() if subscription.current_period_end else None
            ),
            cancel_at_period_end=subscription.cancel_at_period_end,
        )
    )


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(
    body: CheckoutRequest,
    user: Profile = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Start a Stripe Checkout for a plan.

    Reuses the user's existing Stripe customer when there is one.
    """
    with services.db.session() as session:
        plan = get_plan_by_slug(session, body.plan)
        if not plan:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")

        price_id = price_for_interval(plan, body.interval)
        if not price_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Price not configured for this plan/interval",
            )

        customer_id = session.scalar(
            select(Subscription.stripe_customer_id).where(Subscription.user_id == user.id).limit(1)
        )
        plan_id = plan.id

    app_url = services.settings.app_url.rstrip("/")
    use_client_urls = body.platform == "mobile"
    success_url = body.success_url if use_client_urls and body.success_url else f"{app_url}/dashboard?success=true"
    cancel_url = body.cancel_url if use_client_urls and body.cancel_url else f"{app_url}/pricing?canceled=true"

    session = services.gateway.create_checkout_session(
        user_id=user.id,
        price_id=price_id,
        success_url=success_url,
        cancel_url=cancel_url,
        customer_id=customer_id,
        customer_email=None if customer_id else user.email,
        plan_id=plan_id,
    )
    if not session.get("url"):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create checkout session",
        )

    return CheckoutResponse(checkout_url=session["url"], session_id=session["id"])


@router.post("/portal", response_model=PortalResponse)
def create_portal(
    body: PortalRequest,
    user: Profile = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Open the Stripe billing portal for the user's customer."""
    with services.db.session() as session:
        customer_id = session.scalar(
            select(Subscription.stripe_customer_id).where(Subscription.user_id == user.id).limit(1)
        )

    if not customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active subscription found")

    return_url = body.return_url or f"{services.settings.app_url.rstrip('/')}/billing"
    portal_url = services.gateway.create_portal_session(customer_id, return_url, body.configuration)
    return PortalResponse(portal_url=portal_url)
