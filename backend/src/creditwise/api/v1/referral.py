"""Referral API v1 endpoints."""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from creditwise.api.dependencies import get_services
from creditwise.api.rate_limit import CODE_LOOKUP_LIMIT, limiter
from creditwise.auth.middleware import require_auth
from creditwise.auth.models import Profile
from creditwise.logging_config import get_logger
from creditwise.services import Services

logger = get_logger(__name__)

router = APIRouter(prefix="/referral", tags=["referral"])


# ==================== MODELS ====================


class ReferralCodeResponse(BaseModel):
    """Response with user's referral code."""
    code: str
    invite_url: str


class RegisterReferralRequest(BaseModel):
    """Referral code captured at signup."""
    code: str | None = None


class RegisterReferralResponse(BaseModel):
    registered: bool
    message: str


class ReferralItem(BaseModel):
    id: int
    status: str
    referred_email: str | None = None
    referred_name: str | None = None
    credits_awarded_referrer: int
    created_at: str | None = None
    completed_at: str | None = None


class CreditTotals(BaseModel):
    balance: int
    total_earned: int
    total_spent: int


class ProgramSummary(BaseModel):
    credits_per_referral: int
    credits_for_referred: int
    max_referrals_per_user: int | None = None
    is_active: bool


class ReferralStatsResponse(BaseModel):
    """Response with referral statistics."""
    code: str | None = None
    total_referrals: int
    completed_referrals: int
    pending_referrals: int
    referrals: list[ReferralItem]
    credits: CreditTotals
    config: ProgramSummary


class ValidateCodeResponse(BaseModel):
    """Response from code validation."""
    valid: bool
    referrer_name: str | None = None


# ==================== ENDPOINTS ====================


@router.get("/code", response_model=ReferralCodeResponse)
def get_referral_code(
    user: Profile = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Get current user's referral code.

    Creates a new code if user doesn't have one.
    """
    code = services.referral_service.get_or_create_code(user.id)
    return ReferralCodeResponse(
        code=code,
        invite_url=f"{services.settings.app_url.rstrip('/')}/invite/{code}",
    )


@router.post("/register", response_model=RegisterReferralResponse)
def register_referral(
    body: RegisterReferralRequest,
    user: Profile = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Register the signed-up user against a referral code.

    Creates a pending referral; credits are awarded on first subscription.
    """
    if not body.code:
        return RegisterReferralResponse(registered=False, message="No referral code")

    result = services.referral_service.register_signup(user.id, body.code)
    if not result.success:
        logger.info("referral_rejected", user_id=user.id, reason=result.message)

    return RegisterReferralResponse(registered=result.success, message=result.message)


@router.get("/stats", response_model=ReferralStatsResponse)
def get_referral_stats(
    user: Profile = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Get referral statistics and program settings for current user."""
    stats = services.referral_service.get_referral_stats(user.id)
    config = services.config_store.get_config()

    return ReferralStatsResponse(
        **stats,
        config=ProgramSummary(
            credits_per_referral=config.credits_per_referral,
            credits_for_referred=config.credits_for_referred,
            max_referrals_per_user=config.max_referrals_per_user,
            is_active=config.is_active,
        ),
    )


@router.get("/validate", response_model=ValidateCodeResponse)
@limiter.limit(CODE_LOOKUP_LIMIT)
def validate_referral_code(
    request: Request,
    code: str = Query(..., min_length=1, max_length=20),
    services: Services = Depends(get_services),
):
    """Validate a referral code.

    Public: used by invite pages to show who sent the invitation.
    """
    result = services.referral_service.validate_code(code)
    return ValidateCodeResponse(valid=result.valid, referrer_name=result.referrer_name)
