"""
JWT token validation and caller identification.

This module handles the Authentication (AuthN) layer for every bridge surface
(HTTP routes and MCP requests):
- Extracts Bearer tokens from the HTTP Authorization header
- Validates the JWT signature and expiration
- Extracts the caller's identity (the "sub" claim) and an optional username

Authorization is NOT decided here. The token only says who the caller is;
what they may do comes from their profile (see profiles.py) and is enforced
by the Authorization Guard.

Token structure (JWT payload):
    {
        "sub": "user-42",              # Identity id, used for profile lookup
        "name": "Alice Example",       # Optional display name
        "exp": 1738800000              # Expiration (Unix timestamp)
    }
"""

from dataclasses import dataclass

import jwt

from workflow_bridge.config import settings

# Claims checked, in order, for a human-readable username.
USERNAME_CLAIMS = ("name", "preferred_username", "email")


class AuthError(Exception):
    """
    Raised when token validation fails for any reason.

    One exception type covers missing, malformed, forged and expired tokens.
    The detailed reason is logged server-side; clients get a generic 401.

    Attributes:
        message: Human-readable error description (logged server-side)
        status_code: HTTP status code to return (401 for auth failures)
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class Identity:
    """
    Validated caller identity extracted from a JWT.

    Attributes:
        subject: The "sub" claim, the identity id used for profile lookup
        username: Display name from the first present USERNAME_CLAIMS entry
    """

    subject: str
    username: str | None = None


def validate_token(authorization_header: str | None) -> Identity:
    """
    Validate a Bearer token from the Authorization header.

    Args:
        authorization_header: The raw Authorization header value,
                              expected format: "Bearer <jwt-token>"

    Returns:
        Identity with the validated subject and optional username

    Raises:
        AuthError: If any validation step fails
    """
    if not authorization_header:
        raise AuthError("Missing Authorization header")

    # RFC 6750: the scheme is matched case-insensitively.
    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

    token = parts[1]

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthError("Invalid subject claim: must be a non-empty string")

    username = None
    for claim in USERNAME_CLAIMS:
        value = payload.get(claim)
        if isinstance(value, str) and value:
            username = value
            break

    return Identity(subject=subject, username=username)
