"""
verify.py
---------
Purpose:
    JWT verification using Supabase JWKS (ES256) and the console's
    authorization dependencies.

Notes:
    - `auth_dependency` yields the verified claims.
    - `current_business` resolves the business owned by the caller.
    - `require_admin` checks the `user_roles` table; there is no shared
      admin password.
"""

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from localedge.config import settings
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.domain.appointment_domain import Business
from localedge.repositories.business_repository import BusinessRepository, UserRoleRepository

logger = get_logger(__name__)

SUPABASE_AUDIENCE = "authenticated"
ADMIN_ROLE = "admin"

_jwk_client = PyJWKClient(settings.jwks_url())
_security = HTTPBearer()


def verify_jwt(token: str) -> dict:
    try:
        signing_key = _jwk_client.get_signing_key_from_jwt(token)
        decoded = jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            audience=SUPABASE_AUDIENCE,
            options={"verify_exp": True},
        )
        return decoded
    except (jwt.PyJWTError, jwt.PyJWKClientError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)


async def current_business(claims: dict = Depends(auth_dependency)) -> Business:
    """The business the authenticated user owns."""
    business = await BusinessRepository.get_for_owner(claims["sub"])
    if not business:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No business found for this user"
        )
    return business


async def require_admin(claims: dict = Depends(auth_dependency)) -> dict:
    if not await UserRoleRepository.has_role(claims["sub"], ADMIN_ROLE):
        logger.warning("Admin access denied", user_id=claims.get("sub"))
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return claims
