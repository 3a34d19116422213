"""Credit balance and transaction log models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from creditwise.storage.models import Base, utcnow

UQ_USER_CREDITS = "uq_user_credits_user_id"


class CreditTransactionType(str, Enum):
    """Kinds of credit movements."""
    REFERRAL_BONUS = "referral_bonus"
    REFERRED_BONUS = "referred_bonus"
    PURCHASE = "purchase"
    USAGE = "usage"
    ADJUSTMENT = "adjustment"
    EXPIRY = "expiry"


class UserCredits(Base):
    """Running credit totals per user.

    Maintained incrementally alongside the transaction log, never recomputed.
    """

    __tablename__ = "user_credits"
    __table_args__ = (UniqueConstraint("user_id", name=UQ_USER_CREDITS),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_spent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserCredits(user_id={self.user_id}, balance={self.balance})>"


class CreditTransaction(Base):
    """Append-only credit log entry."""

    __tablename__ = "credit_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    referral_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("referrals.id"), nullable=True)
    stripe_transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CreditTransaction(user_id={self.user_id}, amount={self.amount}, type={self.type})>"
