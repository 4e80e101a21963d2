"""
Security module.

Access token issuing and validation for the HTTP API.
"""

from formzilla.security.auth import (
    AuthenticationError,
    CurrentUser,
    TokenExpiredError,
    create_access_token,
    decode_access_token,
    get_current_user,
)


__all__ = [
    "AuthenticationError",
    "TokenExpiredError",
    "CurrentUser",
    "create_access_token",
    "decode_access_token",
    "get_current_user",
]
