"""Service wiring.

Everything that talks to the database or Stripe is constructed once here,
from settings, and passed explicitly to whoever needs it.
"""

from dataclasses import dataclass

from creditwise.billing.sync import SubscriptionSynchronizer
from creditwise.credits.ledger import CreditLedger
from creditwise.payments.gateway import StripeGateway
from creditwise.referral.config import ReferralConfigStore
from creditwise.referral.service import ReferralService
from creditwise.settings import Settings
from creditwise.storage.db import Database


@dataclass
class Services:
    """Process-wide service instances."""

    settings: Settings
    db: Database
    gateway: StripeGateway
    config_store: ReferralConfigStore
    credit_ledger: CreditLedger
    referral_service: ReferralService
    synchronizer: SubscriptionSynchronizer


def build_services(
    settings: Settings,
    database: Database | None = None,
    gateway: StripeGateway | None = None,
) -> Services:
    """Build the service graph.

    Args:
        settings: Validated settings
        database: Pre-built database (defaults to settings.database_url)
        gateway: Pre-built Stripe gateway (defaults to one from settings)

    Raises:
        PaymentGatewayError: Stripe secret key missing and no gateway given
    """
    database = database or Database(settings.database_url)
    gateway = gateway or StripeGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.stripe_currency,
    )

    config_store = ReferralConfigStore(database)
    credit_ledger = CreditLedger(database, gateway)
    referral_service = ReferralService(
        database,
        config_store,
        credit_ledger,
        code_length=settings.referral_code_length,
    )
    synchronizer = SubscriptionSynchronizer(database, gateway, referral_service)

    return Services(
        settings=settings,
        db=database,
        gateway=gateway,
        config_store=config_store,
        credit_ledger=credit_ledger,
        referral_service=referral_service,
        synchronizer=synchronizer,
    )
