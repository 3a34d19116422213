"""Profile store mirrored from the identity provider."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from creditwise.storage.models import Base, utcnow


class UserRole(str, Enum):
    """Role levels."""
    USER = "user"
    ADMIN = "admin"


class Profile(Base):
    """User profile, keyed by the identity provider's user id.

    Read-only for this service: rows are written by the identity sync.
    """

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER.value, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email})>"
