"""Admin endpoints: subscription sweep and referral program settings."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from creditwise.api.dependencies import get_services
from creditwise.auth.middleware import require_admin
from creditwise.auth.models import Profile
from creditwise.logging_config import get_logger
from creditwise.referral.config import ReferralConfigUpdate
from creditwise.services import Services

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _config_dict(config) -> dict:
    return {
        "credits_per_referral": config.credits_per_referral,
        "credits_for_referred": config.credits_for_referred,
        "max_referrals_per_user": config.max_referrals_per_user,
        "is_active": config.is_active,
        "require_subscription": config.require_subscription,
    }


@router.post("/billing/sync")
async def sync_subscriptions(
    admin: Profile = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Re-sync all live Stripe subscriptions into the local table."""
    logger.info("subscription_sweep_requested", admin_id=admin.id)
    report = await run_in_threadpool(services.synchronizer.sweep)
    return report.as_dict()


@router.get("/referral/config")
def get_referral_config(
    admin: Profile = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Get the referral program configuration."""
    return _config_dict(services.config_store.get_config())


@router.patch("/referral/config")
def update_referral_config(
    body: ReferralConfigUpdate,
    admin: Profile = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Update the referral program configuration."""
    config = services.config_store.update_config(body)
    logger.info("referral_config_changed_by_admin", admin_id=admin.id)
    return _config_dict(config)
