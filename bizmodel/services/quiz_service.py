# bizmodel/services/quiz_service.py
from typing import Any

from sqlmodel import Session

from bizmodel.core.errors import NotFound, Forbidden, PaymentRequired, REASON_QUIZ_RETAKE_EXHAUSTED
from bizmodel.core.logging import get_logger
from bizmodel.models.quiz_attempt import QuizAttempt
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.schemas.quiz import QuizAttemptCreated, RetakeStatus

logger = get_logger(__name__)

# Everyone gets one attempt without paying
FREE_ATTEMPTS = 1


class QuizService:
    """
    Quiz retake gate and attempt history.

    remaining = 1 free attempt + retakes bought in bundles - attempts recorded,
    unless the user holds an access pass (then there is no limit).
    Always evaluated at submission time from the ledger.
    """

    def __init__(self, attempt_repo: QuizAttemptRepository, payment_repo: PaymentRepository):
        self.attempt_repo = attempt_repo
        self.payment_repo = payment_repo

    def remaining_retakes(self, session: Session, user_id: int) -> int:
        granted = self.payment_repo.retakes_granted(session, user_id)
        used = self.attempt_repo.count_for_user(session, user_id)
        return max(FREE_ATTEMPTS + granted - used, 0)

    def can_submit_quiz(self, session: Session, user_id: int) -> bool:
        if self.payment_repo.has_access_pass(session, user_id):
            return True
        return self.remaining_retakes(session, user_id) > 0

    def get_retake_status(self, session: Session, user_id: int) -> RetakeStatus:
        has_pass = self.payment_repo.has_access_pass(session, user_id)
        remaining = None if has_pass else self.remaining_retakes(session, user_id)
        return RetakeStatus(
            can_submit=has_pass or remaining > 0,
            remaining_retakes=remaining,
            has_access_pass=has_pass,
        )

    def submit_quiz(
        self,
        session: Session,
        user_id: int,
        quiz_data: dict[str, Any],
    ) -> QuizAttemptCreated:
        """
        Record a new attempt if the gate allows it.

        Raises:
            PaymentRequired(402, reason="quiz-retake-exhausted")
        """
        if not self.can_submit_quiz(session, user_id):
            logger.info("Quiz submission refused for user %s: no retakes left", user_id)
            raise PaymentRequired(
                REASON_QUIZ_RETAKE_EXHAUSTED,
                "No quiz retakes left. Buy a retake bundle or an access pass to continue.",
            )

        attempt = self.attempt_repo.create(
            session,
            QuizAttempt(user_id=user_id, quiz_data=quiz_data),
        )
        status = self.get_retake_status(session, user_id)
        return QuizAttemptCreated(
            id=attempt.id,
            completed_at=attempt.completed_at,
            remaining_retakes=status.remaining_retakes,
        )

    def list_attempts(
        self,
        session: Session,
        user_id: int,
        skip: int = 0,
        limit: int = 50,
    ) -> list[QuizAttempt]:
        return self.attempt_repo.list_for_user(session, user_id, skip, limit)

    def get_owned_attempt(self, session: Session, user_id: int, attempt_id: int) -> QuizAttempt:
        """
        Raises:
            NotFound(404), Forbidden(403)
        """
        attempt = self.attempt_repo.get_by_id(session, attempt_id)
        if attempt is None:
            raise NotFound("Quiz attempt not found")
        if attempt.user_id != user_id:
            raise Forbidden("Quiz attempt belongs to another user")
        return attempt
