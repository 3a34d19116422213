"""Request rate limits for the public API surface."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from creditwise.settings import settings

# Unauthenticated code lookups (invite pages)
CODE_LOOKUP_LIMIT = "30/minute"


def client_address(request: Request) -> str:
    """First hop of X-Forwarded-For when behind the proxy, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and request.app.state.services.settings.trust_forwarded_for:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=client_address,
    default_limits=[settings.rate_limit_default],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.env == "production",
)
