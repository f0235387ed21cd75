# bizmodel/repositories/user_repo.py
from datetime import datetime

from sqlalchemy import delete
from sqlmodel import Session, select

from bizmodel.models.user import User, PasswordResetToken


class UserRepository:
    """
    Data access layer for User and PasswordResetToken.

    Responsibilities:
      - Pure DB operations (CRUD + queries)
      - No FastAPI, no HTTP, no business logic
    """

    # ----- Basic CRUD -----

    def get_by_id(self, session: Session, user_id: int) -> User | None:
        """Return a User by primary key, or None if not found."""
        return session.get(User, user_id)

    def get_by_email(self, session: Session, email: str) -> User | None:
        """Return a User by unique email, or None if not found."""
        stmt = select(User).where(User.email == email.strip().lower())
        return session.exec(stmt).first()

    def create(self, session: Session, user: User) -> User:
        """Insert a new User and return the persisted row."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def add(self, session: Session, user: User) -> User:
        """
        Insert a User without committing, but ensure id is populated.

        Used inside multi-step transactions (account promotion).
        """
        session.add(user)
        session.flush()
        return user

    def update(self, session: Session, user: User) -> User:
        """Persist changes to an existing User."""
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    def delete(self, session: Session, user: User) -> None:
        """
        Delete a User.

        Owned rows (attempts, payments, refunds, tokens, sessions) are
        removed by the database through ON DELETE CASCADE.
        """
        session.delete(user)
        session.commit()

    # ----- Password reset tokens -----

    def add_reset_token(
        self,
        session: Session,
        token: PasswordResetToken,
    ) -> PasswordResetToken:
        session.add(token)
        session.commit()
        session.refresh(token)
        return token

    def get_reset_token(self, session: Session, token: str) -> PasswordResetToken | None:
        return session.get(PasswordResetToken, token)

    def delete_reset_token(self, session: Session, token: PasswordResetToken) -> None:
        """Delete without committing (consumed together with the password change)."""
        session.delete(token)
        session.flush()

    def purge_expired_reset_tokens(self, session: Session, now: datetime) -> int:
        stmt = delete(PasswordResetToken).where(PasswordResetToken.expires_at < now)
        result = session.exec(stmt)  # type: ignore[call-overload]
        session.commit()
        return result.rowcount or 0
