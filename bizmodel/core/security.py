# bizmodel/core/security.py
"""
Security helpers shared across services.

- Hash & verify passwords (never store raw passwords, not even in the
  staged-account table).
- Generate opaque high-entropy tokens (staged accounts, password resets,
  session ids).
- Sign / verify the session cookie (JWT wrapping the opaque session id).
"""

import re
import secrets
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from bizmodel.core.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

_PASSWORD_RULE = re.compile(r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")
MIN_PASSWORD_LENGTH = 8


def hash_password(raw_password: str) -> str:
    return pwd_context.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    """
    Verify a raw password against a stored hash.

    Malformed / unknown hashes count as a mismatch rather than an error.
    """
    try:
        return pwd_context.verify(raw_password, hashed_password)
    except (ValueError, TypeError):
        return False


def check_password_strength(raw_password: str) -> str:
    """
    Enforce the signup / reset password policy.

    Rules:
      - at least 8 characters
      - at least one lowercase, one uppercase letter and one digit

    Raises:
        ValueError: with a user-facing message.
    """
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    if not _PASSWORD_RULE.match(raw_password):
        raise ValueError(
            "Password must contain at least one uppercase letter, "
            "one lowercase letter, and one number"
        )
    return raw_password


def new_token(nbytes: int = 32) -> str:
    """URL-safe random token (default 256 bits of entropy)."""
    return secrets.token_urlsafe(nbytes)


def sign_session_id(sid: str) -> str:
    """Wrap a session id in a signed cookie value."""
    return jwt.encode({"sid": sid}, settings.SESSION_SECRET, algorithm=settings.SESSION_ALG)


def read_session_id(cookie_value: str) -> str | None:
    """
    Return the session id from a signed cookie value.

    Tampered or malformed cookies resolve to None (treated as no session).
    """
    try:
        claims: dict[str, Any] = jwt.decode(
            cookie_value,
            settings.SESSION_SECRET,
            algorithms=[settings.SESSION_ALG],
        )
    except JWTError:
        return None
    sid = claims.get("sid")
    return sid if isinstance(sid, str) and sid else None
