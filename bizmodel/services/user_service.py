# bizmodel/services/user_service.py
from datetime import timedelta

from sqlmodel import Session

from bizmodel.core.clock import ensure_aware, utcnow
from bizmodel.core.config import get_settings
from bizmodel.core.errors import InvalidCredentials, InvalidRequest
from bizmodel.core.logging import get_logger
from bizmodel.core.security import hash_password, new_token, verify_password
from bizmodel.models.user import PasswordResetToken, User
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.session_repo import LoginSessionRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.schemas.user import ProfileUpdate, UserRead
from bizmodel.services.email_service import TEMPLATE_PASSWORD_RESET
from bizmodel.services.payment_service import PendingEmail

logger = get_logger(__name__)


class UserService:
    """
    Business logic for durable users.

    Responsibilities:
      - credential checks (login, change password)
      - profile edits (name, email opt-out; email itself is not editable)
      - password reset tokens: single use, expire after PASSWORD_RESET_TTL_MINUTES
      - account deletion (storage cascades the rest)
    """

    def __init__(
        self,
        repo: UserRepository,
        payment_repo: PaymentRepository,
        session_repo: LoginSessionRepository,
    ):
        self.repo = repo
        self.payment_repo = payment_repo
        self.session_repo = session_repo

    def to_read(self, session: Session, user: User) -> UserRead:
        return UserRead(
            id=user.id,
            email=user.email,
            name=user.name,
            is_unsubscribed=user.is_unsubscribed,
            is_paid=self.payment_repo.has_completed(session, user.id),
            created_at=user.created_at,
        )

    # ----- Credentials -----

    def authenticate(self, session: Session, email: str, password: str) -> User:
        """
        Raises:
            InvalidCredentials(401): unknown email or wrong password (same error).
        """
        user = self.repo.get_by_email(session, email)
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentials()
        return user

    def change_password(
        self,
        session: Session,
        user: User,
        current_password: str,
        new_password: str,
    ) -> None:
        if not verify_password(current_password, user.password_hash):
            raise InvalidRequest("Current password is incorrect")
        user.password_hash = hash_password(new_password)
        user.updated_at = utcnow()
        user.session_version += 1
        self.repo.update(session, user)
        self.session_repo.delete_for_user(session, user.id)
        logger.info("Password changed for user %s; sessions revoked", user.id)

    # ----- Profile -----

    def update_profile(self, session: Session, user: User, payload: ProfileUpdate) -> User:
        if payload.name is not None:
            user.name = payload.name
        if payload.is_unsubscribed is not None:
            user.is_unsubscribed = payload.is_unsubscribed
        user.updated_at = utcnow()
        return self.repo.update(session, user)

    def unsubscribe(self, session: Session, email: str) -> None:
        """Opt an address out of marketing email. Unknown addresses are ignored."""
        user = self.repo.get_by_email(session, email)
        if user is not None and not user.is_unsubscribed:
            user.is_unsubscribed = True
            user.updated_at = utcnow()
            self.repo.update(session, user)

    def delete_account(self, session: Session, user: User) -> None:
        user_id = user.id
        self.repo.delete(session, user)
        logger.info("User %s deleted", user_id)

    # ----- Password reset -----

    def request_password_reset(self, session: Session, email: str) -> PendingEmail | None:
        """
        Issue a reset token for a known email.

        Returns the email to send, or None for unknown addresses. Callers
        answer the same way in both cases.
        """
        user = self.repo.get_by_email(session, email)
        if user is None:
            return None

        ttl = timedelta(minutes=get_settings().PASSWORD_RESET_TTL_MINUTES)
        token = self.repo.add_reset_token(
            session,
            PasswordResetToken(
                token=new_token(),
                user_id=user.id,
                expires_at=utcnow() + ttl,
            ),
        )
        logger.info("Password reset requested for user %s", user.id)
        return PendingEmail(
            TEMPLATE_PASSWORD_RESET,
            user.email,
            {"name": user.name, "token": token.token},
        )

    def _valid_reset_token(self, session: Session, token: str) -> PasswordResetToken | None:
        reset = self.repo.get_reset_token(session, token)
        if reset is None:
            return None
        if ensure_aware(reset.expires_at) <= utcnow():
            self.repo.delete_reset_token(session, reset)
            session.commit()
            return None
        return reset

    def verify_reset_token(self, session: Session, token: str) -> None:
        """
        Raises:
            InvalidRequest(400): unknown, used or expired token.
        """
        if self._valid_reset_token(session, token) is None:
            raise InvalidRequest("Invalid or expired reset token")

    def reset_password(self, session: Session, token: str, new_password: str) -> None:
        """
        Set a new password and consume the token in one commit.

        Every existing login session is revoked: session rows are deleted
        and the session version bump invalidates fallback entries, so a
        browser that was logged in before the reset cannot come back.
        """
        reset = self._valid_reset_token(session, token)
        if reset is None:
            raise InvalidRequest("Invalid or expired reset token")

        user = self.repo.get_by_id(session, reset.user_id)
        if user is None:
            raise InvalidRequest("Invalid or expired reset token")

        user.password_hash = hash_password(new_password)
        user.updated_at = utcnow()
        user.session_version += 1
        session.add(user)
        self.repo.delete_reset_token(session, reset)
        session.commit()
        self.session_repo.delete_for_user(session, user.id)
        logger.info("Password reset completed for user %s", user.id)

    def purge_expired_reset_tokens(self, session: Session) -> int:
        return self.repo.purge_expired_reset_tokens(session, utcnow())
