"""Credit ledger.

Credits live in three places: the Stripe customer balance (what the user
sees on invoices), the credit_transactions log, and the user_credits running
totals. An award writes all three in that order. There is no transaction
spanning them, so a failure part-way leaves them out of step.
"""

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from creditwise.auth.models import Profile
from creditwise.billing.models import Subscription
from creditwise.credits.models import UQ_USER_CREDITS, CreditTransaction, CreditTransactionType, UserCredits
from creditwise.logging_config import get_logger
from creditwise.payments.gateway import StripeGateway
from creditwise.storage.constraints import violated_constraint
from creditwise.storage.db import Database

logger = get_logger(__name__)

# One credit is worth one unit of the billing currency
CENTS_PER_CREDIT = 100


class CreditLedger:
    """Service for awarding and reading user credits."""

    def __init__(self, database: Database, gateway: StripeGateway):
        self.db = database
        self.gateway = gateway
        self.logger = get_logger(__name__)

    def get_or_create_customer(self, user_id: str) -> str:
        """Resolve the Stripe customer for a user, creating one if needed.

        Order: a local subscription row, then a Stripe search on metadata,
        then a new customer built from the profile.
        """
        with self.db.session() as session:
            customer_id = session.scalar(
                select(Subscription.stripe_customer_id)
                .where(Subscription.user_id == user_id)
                .limit(1)
            )
            profile = session.get(Profile, user_id)
            email = profile.email if profile else None
            name = profile.full_name if profile else None

        if customer_id:
            return customer_id

        customer_id = self.gateway.find_customer_by_user(user_id)
        if customer_id:
            return customer_id

        return self.gateway.create_customer(user_id, email=email, name=name)

    def award_credits(
        self,
        user_id: str,
        amount: int,
        type: CreditTransactionType,
        description: str,
        referral_id: int | None = None,
    ) -> CreditTransaction:
        """Award credits to a user.

        Args:
            user_id: Recipient
            amount: Credits to add (positive)
            type: Transaction type
            description: Shown on the Stripe balance and in the log
            referral_id: Referral that triggered the award

        Returns:
            The logged credit transaction

        Raises:
            PaymentGatewayError: Stripe rejected the customer or balance call
        """
        if amount <= 0:
            raise ValueError("Amount must be positive")

        customer_id = self.get_or_create_customer(user_id)

        metadata = {"type": type.value, "user_id": user_id}
        if referral_id is not None:
            metadata["referral_id"] = str(referral_id)

        stripe_transaction_id = self.gateway.create_balance_credit(
            customer_id,
            amount_cents=amount * CENTS_PER_CREDIT,
            description=description,
            metadata=metadata,
        )

        with self.db.session() as session:
            transaction = CreditTransaction(
                user_id=user_id,
                amount=amount,
                type=type.value,
                description=description,
                referral_id=referral_id,
                stripe_transaction_id=stripe_transaction_id,
            )
            session.add(transaction)

        self._increment_balance(user_id, amount)

        self.logger.info(
            "credits_awarded",
            user_id=user_id,
            amount=amount,
            type=type.value,
            referral_id=referral_id,
            stripe_transaction_id=stripe_transaction_id,
        )
        return transaction

    def _increment_balance(self, user_id: str, amount: int) -> None:
        """Add to the running totals with a single UPDATE.

        If no row exists yet one is inserted; when that insert loses a race
        to a concurrent award, the update is applied to the winner's row.
        """
        increment = (
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(
                balance=UserCredits.balance + amount,
                total_earned=UserCredits.total_earned + amount,
            )
        )

        with self.db.session() as session:
            if session.execute(increment).rowcount:
                return

        try:
            with self.db.session() as session:
                session.add(UserCredits(user_id=user_id, balance=amount, total_earned=amount, total_spent=0))
        except IntegrityError as e:
            if violated_constraint(e) != UQ_USER_CREDITS:
                raise
            with self.db.session() as session:
                session.execute(increment)

    def get_balance(self, user_id: str) -> dict[str, int]:
        """Get a user's credit totals (zeros if none recorded)."""
        with self.db.session() as session:
            credits = session.scalar(select(UserCredits).where(UserCredits.user_id == user_id))

        if not credits:
            return {"balance": 0, "total_earned": 0, "total_spent": 0}

        return {
            "balance": credits.balance,
            "total_earned": credits.total_earned,
            "total_spent": credits.total_spent,
        }

    def get_transactions(self, user_id: str, limit: int = 50, offset: int = 0) -> list[CreditTransaction]:
        """Get a user's credit log, newest first."""
        with self.db.session() as session:
            return list(
                session.scalars(
                    select(CreditTransaction)
                    .where(CreditTransaction.user_id == user_id)
                    .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
                    .offset(offset)
                    .limit(limit)
                )
            )

    @staticmethod
    def serialize_transaction(transaction: CreditTransaction) -> dict[str, Any]:
        return {
            "id": transaction.id,
            "amount": transaction.amount,
            "type": transaction.type,
            "description": transaction.description,
            "referral_id": transaction.referral_id,
            "created_at": transaction.created_at.isoformat() if transaction.created_at else None,
        }
