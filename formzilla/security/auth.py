"""
Bearer token authentication.

Users are authenticated by an external identity provider; this module only
issues and validates the signed JWT access tokens that carry their id.
"""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import HTTPException, Request, status
from jose import ExpiredSignatureError, JWTError, jwt

from formzilla.config import get_logger, get_settings


logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Raised when an access token is missing or invalid."""


class TokenExpiredError(AuthenticationError):
    """Raised when an access token has expired."""


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """Identity carried by a validated access token."""

    user_id: str
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "email": self.email}


def create_access_token(
    user_id: str,
    email: str | None = None,
    expires_minutes: int | None = None,
) -> str:
    """
    Create a signed access token.

    Args:
        user_id: Subject of the token.
        email: Optional email claim.
        expires_minutes: Lifetime override. Defaults to settings.

    Returns:
        Encoded JWT.
    """
    settings = get_settings().security
    now = datetime.now(UTC)
    lifetime = expires_minutes or settings.jwt_access_token_expire_minutes

    claims: dict[str, Any] = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=lifetime),
        "jti": secrets.token_urlsafe(16),
        "token_type": "access",
    }
    if email:
        claims["email"] = email

    return jwt.encode(
        claims,
        settings.secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> CurrentUser:
    """
    Validate an access token.

    Raises:
        TokenExpiredError: If the token has expired.
        AuthenticationError: If the token is invalid.
    """
    settings = get_settings().security
    try:
        payload = jwt.decode(
            token,
            settings.secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError as e:
        raise TokenExpiredError("Token has expired") from e
    except JWTError as e:
        raise AuthenticationError(f"Invalid token: {e}") from e

    if payload.get("token_type") != "access" or not payload.get("sub"):
        raise AuthenticationError("Invalid token type")

    return CurrentUser(user_id=str(payload["sub"]), email=payload.get("email"))


async def get_current_user(request: Request) -> CurrentUser:
    """
    FastAPI dependency resolving the caller from the Authorization header.

    Raises:
        HTTPException: 401 if not authenticated.
    """
    request_id = getattr(request.state, "request_id", "")

    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_access_token(token.strip())
    except AuthenticationError as e:
        logger.warning("auth_failed", error=str(e), request_id=request_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
