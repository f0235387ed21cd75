# bizmodel/core/auth.py
import secrets

from fastapi import Depends, Header, Request, Response
from sqlmodel import Session

from bizmodel.core.config import get_settings
from bizmodel.core.errors import NotAuthenticated
from bizmodel.core.kv_store import KeyValueStore, get_fallback_store
from bizmodel.core.session import SessionGate
from bizmodel.database import get_session
from bizmodel.models.user import User
from bizmodel.repositories.session_repo import LoginSessionRepository
from bizmodel.repositories.user_repo import UserRepository

session_repo = LoginSessionRepository()
user_repo = UserRepository()


def get_session_gate(store: KeyValueStore = Depends(get_fallback_store)) -> SessionGate:
    """Session gate wired to the configured fallback store."""
    return SessionGate(session_repo, user_repo, store)


def get_current_user(
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
    gate: SessionGate = Depends(get_session_gate),
) -> User | None:
    """
    Resolve the current user from the session cookie (or the fallback cache).

    Returns:
        User instance if authenticated, else None for anonymous callers.
        Never raises for missing, tampered or stale sessions.
    """
    return gate.resolve_user(request, response, session)


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        NotAuthenticated(401): if no user could be resolved.
    """
    if user is None:
        raise NotAuthenticated()
    return user


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    """
    Guard for admin routes: X-Admin-Key must match ADMIN_API_KEY.

    Admin routes are closed entirely when ADMIN_API_KEY is not set.

    Raises:
        NotAuthenticated(401): on a missing or wrong key.
    """
    expected = get_settings().ADMIN_API_KEY
    if not expected or not x_admin_key:
        raise NotAuthenticated("Admin key required")
    if not secrets.compare_digest(x_admin_key, expected):
        raise NotAuthenticated("Invalid admin key")
