"""Authentication utilities for the diary sync backend.

Owner identity comes from a JWT bearer token whose ``sub`` claim is the owner
id. Issuing tokens is the identity provider's job; ``create_access_token`` is
here for operators and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .errors import Unauthorized
from .logging_config import log_auth_event

# Bearer token scheme; missing credentials are reported by us, not FastAPI
security = HTTPBearer(auto_error=False)


def create_access_token(
    owner_id: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for an owner."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": owner_id,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise Unauthorized("Invalid or expired token")


class AuthContext:
    """Identity of the caller, resolved from the bearer token."""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id

    def __repr__(self) -> str:
        return f"AuthContext(owner_id={self.owner_id!r})"


async def get_current_owner(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthContext:
    """Resolve the calling owner from the Authorization header."""
    if not credentials or not credentials.credentials:
        log_auth_event("bearer", None, False, "missing token")
        raise Unauthorized("Invalid user")

    try:
        payload = decode_token(credentials.credentials, settings)
    except Unauthorized:
        log_auth_event("bearer", None, False, "invalid token")
        raise

    owner_id = payload.get("sub")
    if not owner_id or payload.get("type", "access") != "access":
        log_auth_event("bearer", owner_id, False, "invalid token payload")
        raise Unauthorized("Invalid user")

    return AuthContext(owner_id=owner_id)


# Type alias for dependency injection
CurrentOwner = Annotated[AuthContext, Depends(get_current_owner)]
