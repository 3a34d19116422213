"""Credit balance endpoints."""

from fastapi import APIRouter, Depends, Query

from creditwise.api.dependencies import get_services
from creditwise.auth.middleware import require_auth
from creditwise.auth.models import Profile
from creditwise.services import Services

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("")
def get_credits(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: Profile = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Get the current user's credit totals and recent transactions."""
    ledger = services.credit_ledger
    return {
        **ledger.get_balance(user.id),
        "transactions": [
            ledger.serialize_transaction(t)
            for t in ledger.get_transactions(user.id, limit=limit, offset=offset)
        ],
    }
