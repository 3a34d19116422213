"""Referral program.

- Referrer shares a code; a new user signs up with it (PENDING, no credits)
- On the referred user's first paid checkout the referral COMPLETES and
  both sides receive credits from the current program config
"""

from creditwise.referral.config import ReferralConfigStore, ReferralConfigUpdate
from creditwise.referral.models import Referral, ReferralCode, ReferralConfig, ReferralStatus
from creditwise.referral.service import CodeValidation, ReferralService, SignupResult

__all__ = [
    "CodeValidation",
    "Referral",
    "ReferralCode",
    "ReferralConfig",
    "ReferralConfigStore",
    "ReferralConfigUpdate",
    "ReferralService",
    "ReferralStatus",
    "SignupResult",
]
