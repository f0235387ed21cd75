# bizmodel/services/staging_service.py
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from bizmodel.core.clock import ensure_aware, utcnow
from bizmodel.core.config import get_settings
from bizmodel.core.errors import StagedRecordNotFound, UserAlreadyExists
from bizmodel.core.identity import StagedRef
from bizmodel.core.logging import get_logger, mask
from bizmodel.core.security import hash_password, new_token
from bizmodel.models.quiz_attempt import QuizAttempt
from bizmodel.models.staged_account import AccountPromotion, StagedAccount
from bizmodel.models.user import User
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository

logger = get_logger(__name__)


@dataclass
class Promotion:
    """Outcome of promoting a staged account."""
    user_id: int
    quiz_attempt_id: int | None
    already_promoted: bool


class StagingService:
    """
    Temporary account reconciler.

    Per email address:
      NoAccount -> Staged      (signup, email not durable)
      Staged    -> Durable     (first payment completes)
      Staged    -> NoAccount   (staged row expires; nothing durable was written)
      NoAccount -> rejected    (signup with an email that is already durable)
    """

    def __init__(
        self,
        staged_repo: StagedAccountRepository,
        user_repo: UserRepository,
        attempt_repo: QuizAttemptRepository,
    ):
        self.staged_repo = staged_repo
        self.user_repo = user_repo
        self.attempt_repo = attempt_repo

    def stage_account(
        self,
        session: Session,
        email: str,
        password: str,
        name: str | None,
        quiz_data: dict[str, Any] | None = None,
    ) -> StagedAccount:
        """
        Park signup data until payment.

        The password is hashed before anything is written. Staging the same
        email again replaces the previous staged row.

        Raises:
            UserAlreadyExists(409): if the email already belongs to a durable user.
        """
        email = email.strip().lower()
        if self.user_repo.get_by_email(session, email):
            raise UserAlreadyExists()

        now = utcnow()
        self.staged_repo.delete_for_email(session, email)
        staged = self.staged_repo.add(
            session,
            StagedAccount(
                token=new_token(),
                email=email,
                password_hash=hash_password(password),
                name=name,
                quiz_data=quiz_data or {},
                created_at=now,
                expires_at=now + timedelta(hours=get_settings().STAGED_ACCOUNT_TTL_HOURS),
            ),
        )
        session.commit()
        session.refresh(staged)
        logger.info("Account staged (token %s)", mask(staged.token))
        return staged

    def get_staged(self, session: Session, ref: StagedRef) -> StagedAccount | None:
        """Return the live staged row, deleting it instead if it has expired."""
        staged = self.staged_repo.get(session, ref.token)
        if staged is None:
            return None
        if ensure_aware(staged.expires_at) <= utcnow():
            self.staged_repo.delete(session, staged)
            session.commit()
            logger.info("Staged account %s expired", mask(ref.token))
            return None
        return staged

    def require_staged(self, session: Session, ref: StagedRef) -> StagedAccount:
        staged = self.get_staged(session, ref)
        if staged is None:
            raise StagedRecordNotFound()
        return staged

    def promote_staged_account(self, session: Session, ref: StagedRef) -> Promotion:
        """
        Turn a staged account into a durable user.

        Creates the users row from the staged credentials, records the staged
        quiz answers as the user's first attempt, remembers the promotion and
        deletes the staged row, all in one transaction.

        Idempotent: promoting the same token again returns the same user id
        with already_promoted=True.

        Raises:
            StagedRecordNotFound(404): no staged row (expired, or never existed).
            UserAlreadyExists(409): another signup made the email durable first.
        """
        previous = self.staged_repo.get_promotion(session, ref.token)
        if previous is not None:
            logger.info("Promotion replayed for token %s -> user %s", mask(ref.token), previous.user_id)
            return Promotion(previous.user_id, previous.quiz_attempt_id, already_promoted=True)

        staged = self.staged_repo.get(session, ref.token)
        if staged is None:
            raise StagedRecordNotFound()

        if self.user_repo.get_by_email(session, staged.email):
            logger.warning("Promotion of %s refused: email already durable", mask(ref.token))
            raise UserAlreadyExists()

        try:
            user = self.user_repo.add(
                session,
                User(
                    email=staged.email,
                    password_hash=staged.password_hash,
                    name=staged.name,
                ),
            )
            attempt_id = None
            if staged.quiz_data:
                attempt = self.attempt_repo.add(
                    session,
                    QuizAttempt(user_id=user.id, quiz_data=staged.quiz_data),
                )
                attempt_id = attempt.id
            self.staged_repo.add_promotion(
                session,
                AccountPromotion(
                    staged_token=ref.token,
                    user_id=user.id,
                    quiz_attempt_id=attempt_id,
                ),
            )
            self.staged_repo.delete(session, staged)
            session.commit()
        except IntegrityError:
            session.rollback()
            # Lost a race: either the same token was promoted concurrently,
            # or a durable signup took the email.
            previous = self.staged_repo.get_promotion(session, ref.token)
            if previous is not None:
                return Promotion(previous.user_id, previous.quiz_attempt_id, already_promoted=True)
            raise UserAlreadyExists()

        logger.info("Staged account %s promoted to user %s", mask(ref.token), user.id)
        return Promotion(user.id, attempt_id, already_promoted=False)

    def promoted_user_id(self, session: Session, ref: StagedRef) -> int | None:
        """Durable user this staged token became, or None if never promoted."""
        promotion = self.staged_repo.get_promotion(session, ref.token)
        return promotion.user_id if promotion is not None else None

    def purge_expired(self, session: Session) -> int:
        count = self.staged_repo.purge_expired(session, utcnow())
        session.commit()
        return count
