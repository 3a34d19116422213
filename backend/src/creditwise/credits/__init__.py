"""Credit balances and the append-only credit log."""

from creditwise.credits.ledger import CreditLedger
from creditwise.credits.models import CreditTransaction, CreditTransactionType, UserCredits

__all__ = ["CreditLedger", "CreditTransaction", "CreditTransactionType", "UserCredits"]
