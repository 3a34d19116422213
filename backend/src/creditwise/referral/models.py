"""Referral system database models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from creditwise.storage.models import Base, utcnow

CONFIG_ROW_ID = 1

UQ_CODE_USER = "uq_referral_codes_user_id"
UQ_CODE_CODE = "uq_referral_codes_code"
UQ_REFERRED = "uq_referrals_referred_id"


class ReferralStatus(str, Enum):
    """Referral lifecycle states."""
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"  # reserved
    CANCELLED = "cancelled"  # reserved


class ReferralConfig(Base):
    """Program configuration. Exactly one row, id = 1."""

    __tablename__ = "referral_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=CONFIG_ROW_ID)
    credits_per_referral: Mapped[int] = mapped_column(Integer, nullable=False)
    credits_for_referred: Mapped[int] = mapped_column(Integer, nullable=False)
    max_referrals_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False)
    require_subscription: Mapped[bool] = mapped_column(Boolean, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ReferralConfig(active={self.is_active}, per_referral={self.credits_per_referral})>"


class ReferralCode(Base):
    """Shareable referral code, one per referrer."""

    __tablename__ = "referral_codes"
    __table_args__ = (
        UniqueConstraint("user_id", name=UQ_CODE_USER),
        UniqueConstraint("code", name=UQ_CODE_CODE),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    referrals: Mapped[list["Referral"]] = relationship("Referral", back_populates="referral_code")

    def __repr__(self) -> str:
        return f"<ReferralCode(code={self.code}, user_id={self.user_id})>"


class Referral(Base):
    """Referrer -> referred relationship.

    A user can be referred at most once (unique referred_id).
    """

    __tablename__ = "referrals"
    __table_args__ = (UniqueConstraint("referred_id", name=UQ_REFERRED),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    referred_id: Mapped[str] = mapped_column(String(64), ForeignKey("profiles.id"), nullable=False)
    referral_code_id: Mapped[int] = mapped_column(Integer, ForeignKey("referral_codes.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default=ReferralStatus.PENDING.value, nullable=False)
    credits_awarded_referrer: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credits_awarded_referred: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    referral_code: Mapped[ReferralCode] = relationship("ReferralCode", back_populates="referrals")

    def __repr__(self) -> str:
        return f"<Referral(referrer={self.referrer_id}, referred={self.referred_id}, status={self.status})>"
