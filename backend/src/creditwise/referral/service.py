"""Referral service: codes, signup registration and completion.

Lifecycle of a referral:
1. The referrer shares a code (get_or_create_code).
2. A new user signs up with it: register_signup() records a PENDING
   referral. No credits move at this point.
3. The referred user's first paid checkout arrives through the Stripe
   webhook: complete_on_subscription() marks the referral COMPLETED and
   awards credits to both sides.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from creditwise.auth.models import Profile
from creditwise.credits.ledger import CreditLedger
from creditwise.credits.models import CreditTransactionType
from creditwise.exceptions import ReferralCodeGenerationError
from creditwise.logging_config import get_logger
from creditwise.referral.codes import DEFAULT_CODE_LENGTH, generate_referral_code
from creditwise.referral.config import ReferralConfigStore
from creditwise.referral.models import (
    UQ_CODE_CODE,
    UQ_CODE_USER,
    UQ_REFERRED,
    Referral,
    ReferralCode,
    ReferralConfig,
    ReferralStatus,
)
from creditwise.storage.constraints import violated_constraint
from creditwise.storage.db import Database
from creditwise.storage.models import utcnow

logger = get_logger(__name__)

MAX_CODE_ATTEMPTS = 5

MSG_INACTIVE = "Referral program is not active"
MSG_INVALID_CODE = "Invalid referral code"
MSG_SELF_REFERRAL = "Cannot use your own referral code"
MSG_ALREADY_REFERRED = "User already has a referral"
MSG_CAP_REACHED = "Referrer has reached maximum referrals"
MSG_REGISTERED = "Referral processed successfully"


@dataclass
class SignupResult:
    """Outcome of register_signup(). Rejections are not errors."""

    success: bool
    message: str
    referral_id: int | None = None


@dataclass
class CodeValidation:
    """Outcome of validate_code()."""

    valid: bool
    referrer_name: str | None = None


def _normalize(code: str) -> str:
    return code.upper().strip()


class ReferralService:
    """Service for referral codes and the referral state machine."""

    def __init__(
        self,
        database: Database,
        config_store: ReferralConfigStore,
        credit_ledger: CreditLedger,
        code_length: int = DEFAULT_CODE_LENGTH,
    ):
        self.db = database
        self.config_store = config_store
        self.credit_ledger = credit_ledger
        self.code_length = code_length
        self.logger = get_logger(__name__)

    # ==================== CODES ====================

    def _find_code_for_user(self, user_id: str) -> str | None:
        with self.db.session() as session:
            return session.scalar(select(ReferralCode.code).where(ReferralCode.user_id == user_id))

    def get_or_create_code(self, user_id: str) -> str:
        """Get the user's referral code, creating one on first use.

        Args:
            user_id: Referrer's user ID

        Returns:
            Referral code

        Raises:
            ReferralCodeGenerationError: No unique code after MAX_CODE_ATTEMPTS,
                or the insert failed for an unexpected reason
        """
        existing = self._find_code_for_user(user_id)
        if existing:
            return existing

        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            code = generate_referral_code(self.code_length)
            try:
                with self.db.session() as session:
                    session.add(ReferralCode(user_id=user_id, code=code))
            except IntegrityError as e:
                constraint = violated_constraint(e)

                if constraint == UQ_CODE_CODE:
                    self.logger.debug("referral_code_collision", user_id=user_id, attempt=attempt)
                    continue

                if constraint == UQ_CODE_USER:
                    # A concurrent request created this user's code first
                    winner = self._find_code_for_user(user_id)
                    if winner:
                        return winner

                raise ReferralCodeGenerationError(f"Failed to create referral code: {e.orig}") from e

            self.logger.info("referral_code_created", user_id=user_id, code=code)
            return code

        raise ReferralCodeGenerationError("Failed to generate unique referral code")

    def validate_code(self, code: str) -> CodeValidation:
        """Check a code and return the referrer's display name.

        Args:
            code: Referral code from an invite link

        Returns:
            Validation result
        """
        if not code:
            return CodeValidation(valid=False)

        with self.db.session() as session:
            row = session.execute(
                select(ReferralCode.user_id, Profile.full_name)
                .outerjoin(Profile, Profile.id == ReferralCode.user_id)
                .where(ReferralCode.code == _normalize(code), ReferralCode.is_active.is_(True))
            ).first()

        if not row:
            return CodeValidation(valid=False)

        return CodeValidation(valid=True, referrer_name=row.full_name)

    # ==================== SIGNUP ====================

    def register_signup(self, referred_user_id: str, code: str) -> SignupResult:
        """Record a PENDING referral for a newly registered user.

        Checks run in order and stop at the first failure: program active,
        code valid, not self-referral, not already referred, referrer under
        the cap.

        Args:
            referred_user_id: The new user
            code: Referral code they signed up with

        Returns:
            SignupResult; success is False for every business rejection
        """
        config = self.config_store.get_config()
        if not config.is_active:
            return SignupResult(success=False, message=MSG_INACTIVE)

        with self.db.session() as session:
            referral_code = session.scalar(
                select(ReferralCode).where(
                    ReferralCode.code == _normalize(code or ""),
                    ReferralCode.is_active.is_(True),
                )
            )
            if not referral_code:
                return SignupResult(success=False, message=MSG_INVALID_CODE)

            referrer_id = referral_code.user_id
            if referrer_id == referred_user_id:
                return SignupResult(success=False, message=MSG_SELF_REFERRAL)

            already_referred = session.scalar(
                select(Referral.id).where(Referral.referred_id == referred_user_id)
            )
            if already_referred:
                return SignupResult(success=False, message=MSG_ALREADY_REFERRED)

            if config.max_referrals_per_user:
                count = session.scalar(
                    select(func.count(Referral.id)).where(Referral.referrer_id == referrer_id)
                )
                if count >= config.max_referrals_per_user:
                    return SignupResult(success=False, message=MSG_CAP_REACHED)

            referral_code_id = referral_code.id

        referral = Referral(
            referrer_id=referrer_id,
            referred_id=referred_user_id,
            referral_code_id=referral_code_id,
            status=ReferralStatus.PENDING.value,
            credits_awarded_referrer=0,
            credits_awarded_referred=0,
        )
        try:
            with self.db.session() as session:
                session.add(referral)
        except IntegrityError as e:
            if violated_constraint(e) == UQ_REFERRED:
                # Lost a race with a concurrent signup for the same user
                return SignupResult(success=False, message=MSG_ALREADY_REFERRED)
            raise

        self.logger.info(
            "referral_registered",
            referral_id=referral.id,
            referrer_id=referrer_id,
            referred_id=referred_user_id,
        )
        return SignupResult(success=True, message=MSG_REGISTERED, referral_id=referral.id)

    # ==================== COMPLETION ====================

    def complete_on_subscription(self, referred_user_id: str) -> Referral | None:
        """Complete the user's pending referral and award both parties.

        Safe to call for every checkout: users without a pending referral,
        repeated webhook deliveries and a paused program are all no-ops.

        Args:
            referred_user_id: User whose checkout just completed

        Returns:
            The completed referral, or None if nothing was completed
        """
        with self.db.session() as session:
            referral = session.scalar(
                select(Referral).where(
                    Referral.referred_id == referred_user_id,
                    Referral.status == ReferralStatus.PENDING.value,
                )
            )

        if not referral:
            return None

        config = self.config_store.get_config()
        if not config.is_active:
            self.logger.info("referral_completion_skipped_inactive", referral_id=referral.id)
            return None

        completed_at = utcnow()
        with self.db.session() as session:
            # Conditional on PENDING so only one concurrent caller wins
            result = session.execute(
                update(Referral)
                .where(
                    Referral.id == referral.id,
                    Referral.status == ReferralStatus.PENDING.value,
                )
                .values(
                    status=ReferralStatus.COMPLETED.value,
                    credits_awarded_referrer=config.credits_per_referral,
                    credits_awarded_referred=config.credits_for_referred,
                    completed_at=completed_at,
                )
            )
            if not result.rowcount:
                self.logger.info("referral_already_completed", referral_id=referral.id)
                return None

        referral.status = ReferralStatus.COMPLETED.value
        referral.credits_awarded_referrer = config.credits_per_referral
        referral.credits_awarded_referred = config.credits_for_referred
        referral.completed_at = completed_at

        self.logger.info(
            "referral_completed",
            referral_id=referral.id,
            referrer_id=referral.referrer_id,
            referred_id=referral.referred_id,
        )

        self._award_both(referral, config)
        return referral

    def _award_both(self, referral: Referral, config: ReferralConfig) -> None:
        """Award referrer and referred concurrently.

        Each award stands alone: a failure is logged and neither the other
        award nor the status transition is undone.
        """
        awards = [
            (
                referral.referrer_id,
                config.credits_per_referral,
                CreditTransactionType.REFERRAL_BONUS,
                "Referral bonus for inviting a new user",
            ),
            (
                referral.referred_id,
                config.credits_for_referred,
                CreditTransactionType.REFERRED_BONUS,
                "Welcome bonus from referral",
            ),
        ]

        with ThreadPoolExecutor(max_workers=len(awards), thread_name_prefix="referral-award") as pool:
            futures = [
                (
                    user_id,
                    credit_type,
                    pool.submit(
                        self.credit_ledger.award_credits, user_id, amount, credit_type, description, referral.id
                    ),
                )
                for user_id, amount, credit_type, description in awards
                if amount > 0
            ]

        for user_id, credit_type, future in futures:
            error = future.exception()
            if error is not None:
                self.logger.error(
                    "referral_award_failed",
                    referral_id=referral.id,
                    user_id=user_id,
                    type=credit_type.value,
                    error=str(error),
                )

    # ==================== STATS ====================

    def get_referral_stats(self, user_id: str) -> dict[str, Any]:
        """Get referral statistics for a user.

        Args:
            user_id: Referrer's user ID

        Returns:
            Dict with code, counts, referral list and credit totals
        """
        with self.db.session() as session:
            code = session.scalar(select(ReferralCode.code).where(ReferralCode.user_id == user_id))
            rows = session.execute(
                select(Referral, Profile.email, Profile.full_name)
                .outerjoin(Profile, Profile.id == Referral.referred_id)
                .where(Referral.referrer_id == user_id)
                .order_by(Referral.created_at.desc(), Referral.id.desc())
            ).all()

        referrals = [
            {
                "id": referral.id,
                "status": referral.status,
                "referred_email": email,
                "referred_name": full_name,
                "credits_awarded_referrer": referral.credits_awarded_referrer,
                "created_at": referral.created_at.isoformat() if referral.created_at else None,
                "completed_at": referral.completed_at.isoformat() if referral.completed_at else None,
            }
            for referral, email, full_name in rows
        ]

        return {
            "code": code,
            "total_referrals": len(referrals),
            "completed_referrals": sum(1 for r in referrals if r["status"] == ReferralStatus.COMPLETED.value),
            "pending_referrals": sum(1 for r in referrals if r["status"] == ReferralStatus.PENDING.value),
            "referrals": referrals,
            "credits": self.credit_ledger.get_balance(user_id),
        }
