# bizmodel/core/session.py
"""
Session/Auth gate: map a request to a durable user id, or to nobody.

Two lookups, in order:

  1. Primary: signed cookie -> session id -> row in `sessions`.
  2. Fallback: (client ip, user agent) -> user id plus the user's session
     version, in a KeyValueStore kept for FALLBACK_SESSION_TTL_HOURS.
     Some embedded browsers drop cookies between requests; this bridges
     that for the same browser instance.
     A fallback hit silently re-issues a primary session and cookie, but
     only while the stored version matches the user's current one. A
     password change or reset bumps the version and so revokes every
     fallback entry written before it.

Resolution never raises. A session whose user no longer exists is cleared
and resolves to None, and the handler decides what an anonymous caller gets.
"""

from datetime import timedelta
from typing import Any

from fastapi import Request, Response
from sqlmodel import Session

from bizmodel.core.clock import ensure_aware, utcnow
from bizmodel.core.config import Settings, get_settings
from bizmodel.core.kv_store import KeyValueStore, make_key
from bizmodel.core.logging import get_logger
from bizmodel.core.security import new_token, read_session_id, sign_session_id
from bizmodel.models.user import LoginSession, User
from bizmodel.repositories.session_repo import LoginSessionRepository
from bizmodel.repositories.user_repo import UserRepository

logger = get_logger(__name__)

FALLBACK_NAMESPACE = "fallback-session"


def fallback_key(request: Request) -> str:
    ip = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "")
    return make_key(FALLBACK_NAMESPACE, f"{ip}|{user_agent}")


def _unpack(entry: Any) -> tuple[int | None, int | None]:
    """Fallback values are {"user_id", "version"}; anything else is stale."""
    if not isinstance(entry, dict):
        return None, None
    return entry.get("user_id"), entry.get("version")


class SessionGate:
    def __init__(
        self,
        session_repo: LoginSessionRepository,
        user_repo: UserRepository,
        store: KeyValueStore,
        settings: Settings | None = None,
    ):
        self.session_repo = session_repo
        self.user_repo = user_repo
        self.store = store
        self.settings = settings or get_settings()

    # -------- Resolution --------

    def resolve_user(self, request: Request, response: Response, db: Session) -> User | None:
        """
        Return the User behind this request, or None.

        Side effects:
          - expired or stale primary sessions are deleted (and the cookie cleared)
          - a fallback hit re-creates the primary session and sets a new cookie
        """
        sid = self._cookie_sid(request)
        if sid is not None:
            login_session = self.session_repo.get(db, sid)
            if login_session is not None:
                if ensure_aware(login_session.expires_at) <= utcnow():
                    self.session_repo.delete(db, sid)
                    response.delete_cookie(self.settings.SESSION_COOKIE_NAME)
                else:
                    user = self.user_repo.get_by_id(db, login_session.user_id)
                    if user is not None:
                        return user
                    logger.info("Clearing stale session for missing user %s", login_session.user_id)
                    self._clear(request, response, db, sid)
                    return None

        key = fallback_key(request)
        entry = self.store.get(key)
        if entry is None:
            return None

        user_id, version = _unpack(entry)
        user = self.user_repo.get_by_id(db, user_id) if user_id is not None else None
        if user is None or user.session_version != version:
            # User gone, or sessions revoked since this browser logged in
            logger.info("Clearing stale fallback session for user %s", user_id)
            self.store.delete(key)
            response.delete_cookie(self.settings.SESSION_COOKIE_NAME)
            return None

        logger.info("Session for user %s restored from fallback cache", user.id)
        self._write_primary(response, db, user.id)
        return user

    def resolve_user_id(self, request: Request, response: Response, db: Session) -> int | None:
        user = self.resolve_user(request, response, db)
        return user.id if user is not None else None

    # -------- Lifecycle --------

    def establish_session(
        self,
        request: Request,
        response: Response,
        db: Session,
        user_id: int,
    ) -> str:
        """
        Log the client in as user_id.

        The session row is committed before this returns, so the cookie set
        on the response never points at a session the next request cannot see.
        """
        sid = self._write_primary(response, db, user_id)
        self.store.set(
            fallback_key(request),
            self._fallback_entry(db, user_id),
            ttl_seconds=self.settings.FALLBACK_SESSION_TTL_HOURS * 3600,
        )
        return sid

    def destroy_session(self, request: Request, response: Response, db: Session) -> None:
        self._clear(request, response, db, self._cookie_sid(request))

    # -------- Internals --------

    def _fallback_entry(self, db: Session, user_id: int) -> dict:
        user = self.user_repo.get_by_id(db, user_id)
        return {"user_id": user_id, "version": user.session_version if user else None}

    def _cookie_sid(self, request: Request) -> str | None:
        cookie = request.cookies.get(self.settings.SESSION_COOKIE_NAME)
        if not cookie:
            return None
        return read_session_id(cookie)

    def _write_primary(self, response: Response, db: Session, user_id: int) -> str:
        now = utcnow()
        ttl = timedelta(hours=self.settings.SESSION_TTL_HOURS)
        login_session = self.session_repo.create(
            db,
            LoginSession(
                sid=new_token(),
                user_id=user_id,
                created_at=now,
                expires_at=now + ttl,
            ),
        )
        response.set_cookie(
            key=self.settings.SESSION_COOKIE_NAME,
            value=sign_session_id(login_session.sid),
            max_age=int(ttl.total_seconds()),
            httponly=True,
            secure=self.settings.SESSION_COOKIE_SECURE,
            samesite="lax",
        )
        return login_session.sid

    def _clear(self, request: Request, response: Response, db: Session, sid: str | None) -> None:
        if sid is not None:
            self.session_repo.delete(db, sid)
        self.store.delete(fallback_key(request))
        response.delete_cookie(self.settings.SESSION_COOKIE_NAME)
