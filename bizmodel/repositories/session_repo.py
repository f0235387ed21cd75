# bizmodel/repositories/session_repo.py
from datetime import datetime

from sqlalchemy import delete
from sqlmodel import Session

from bizmodel.models.user import LoginSession


class LoginSessionRepository:
    """
    Data access layer for primary (cookie) sessions.

    Writes commit immediately: a session must be persisted before the
    response that carries its cookie is sent, otherwise the client's next
    request can race the write.
    """

    def get(self, session: Session, sid: str) -> LoginSession | None:
        return session.get(LoginSession, sid)

    def create(self, session: Session, login_session: LoginSession) -> LoginSession:
        session.add(login_session)
        session.commit()
        session.refresh(login_session)
        return login_session

    def delete(self, session: Session, sid: str) -> None:
        session.exec(delete(LoginSession).where(LoginSession.sid == sid))  # type: ignore[call-overload]
        session.commit()

    def delete_for_user(self, session: Session, user_id: int) -> None:
        session.exec(delete(LoginSession).where(LoginSession.user_id == user_id))  # type: ignore[call-overload]
        session.commit()

    def purge_expired(self, session: Session, now: datetime) -> int:
        result = session.exec(delete(LoginSession).where(LoginSession.expires_at < now))  # type: ignore[call-overload]
        session.commit()
        return result.rowcount or 0
