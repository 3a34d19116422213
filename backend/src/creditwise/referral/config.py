"""Referral program configuration store."""

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from creditwise.exceptions import ReferralConfigUnavailableError
from creditwise.logging_config import get_logger
from creditwise.referral.models import CONFIG_ROW_ID, ReferralConfig
from creditwise.storage.db import Database

logger = get_logger(__name__)

REFERRAL_DEFAULTS = {
    "credits_per_referral": 15,
    "credits_for_referred": 15,
    "max_referrals_per_user": None,
    "is_active": True,
    "require_subscription": False,
}


class ReferralConfigUpdate(BaseModel):
    """Partial update of the program configuration."""

    credits_per_referral: int | None = Field(default=None, ge=0)
    credits_for_referred: int | None = Field(default=None, ge=0)
    max_referrals_per_user: int | None = Field(default=None, ge=1)
    is_active: bool | None = None
    require_subscription: bool | None = None


class ReferralConfigStore:
    """Read-through access to the singleton config row.

    The row is created with defaults the first time it is read.
    """

    def __init__(self, database: Database):
        self.db = database

    def _read(self) -> ReferralConfig | None:
        with self.db.session() as session:
            return session.scalar(select(ReferralConfig).where(ReferralConfig.id == CONFIG_ROW_ID))

    def get_config(self) -> ReferralConfig:
        """Get the program configuration, creating it if absent.

        Raises:
            ReferralConfigUnavailableError: Neither the insert nor a re-read
                produced a row
        """
        config = self._read()
        if config:
            return config

        try:
            with self.db.session() as session:
                config = ReferralConfig(id=CONFIG_ROW_ID, **REFERRAL_DEFAULTS)
                session.add(config)
            logger.info("referral_config_initialized", **REFERRAL_DEFAULTS)
            return config
        except SQLAlchemyError as e:
            # A concurrent initializer may have won the insert
            logger.warning("referral_config_init_failed", error=str(e))
            try:
                config = self._read()
            except SQLAlchemyError as retry_error:
                raise ReferralConfigUnavailableError("Referral config not available") from retry_error
            if config:
                return config
            raise ReferralConfigUnavailableError("Referral config not available") from e

    def update_config(self, changes: ReferralConfigUpdate) -> ReferralConfig:
        """Apply a partial update and return the new configuration.

        max_referrals_per_user is cleared when explicitly set to None.
        """
        self.get_config()
        values = {
            field: value
            for field, value in changes.model_dump(exclude_unset=True).items()
            if value is not None or field == "max_referrals_per_user"
        }

        with self.db.session() as session:
            config = session.get(ReferralConfig, CONFIG_ROW_ID)
            for field, value in values.items():
                setattr(config, field, value)

        logger.info("referral_config_updated", **values)
        return config
