"""Unverified access-token claim helpers.

Supabase access token payload structure:
    {
        "sub": "user-uuid",
        "email": "user@example.com",
        "role": "authenticated",
        "aud": "authenticated",
        "exp": 1234567890
    }

The signature is not checked here: the token came from our own auth calls
and the server validates it on every request.
"""

from datetime import datetime, timezone
from typing import Any

from jose import JWTError, jwt


def _claims(access_token: str) -> dict[str, Any]:
    try:
        return jwt.get_unverified_claims(access_token)
    except JWTError:
        return {}


def token_expiry(access_token: str) -> datetime | None:
    """Expiry from the ``exp`` claim, or None if absent or unreadable."""
    exp = _claims(access_token).get("exp")
    if isinstance(exp, (int, float)):
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    return None


def token_subject(access_token: str) -> str | None:
    """User id from the ``sub`` claim."""
    sub = _claims(access_token).get("sub")
    return sub if isinstance(sub, str) and sub else None
