"""Authentication dependencies for FastAPI.

Tokens are issued by the identity provider; we only verify them and load
the matching profile. The subject claim is the user id.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from creditwise.auth.models import Profile
from creditwise.logging_config import get_logger

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Profile | None:
    """Get current authenticated user.

    Args:
        request: FastAPI request
        credentials: Bearer token

    Returns:
        Profile or None if not authenticated
    """
    if not credentials:
        return None

    services = request.app.state.services
    try:
        payload = jwt.decode(
            credentials.credentials,
            services.settings.jwt_secret_key,
            algorithms=[services.settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.debug("token_invalid", error=str(e))
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    with services.db.session() as session:
        profile = session.get(Profile, str(user_id))

    if profile:
        request.state.user = profile
    return profile


def require_auth(user: Profile | None = Depends(get_current_user)) -> Profile:
    """Require authentication - raises 401 if not authenticated.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(user: Profile = Depends(require_auth)) -> Profile:
    """Require admin privileges.

    Raises:
        HTTPException: 403 if not admin
    """
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
