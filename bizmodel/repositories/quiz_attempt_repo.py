# bizmodel/repositories/quiz_attempt_repo.py
from sqlmodel import Session, select, func

from bizmodel.models.quiz_attempt import QuizAttempt


class QuizAttemptRepository:
    """
    Data access layer for quiz attempts.

    Attempts are insert-only; there is deliberately no update method.
    """

    def get_by_id(self, session: Session, attempt_id: int) -> QuizAttempt | None:
        return session.get(QuizAttempt, attempt_id)

    def list_for_user(
        self,
        session: Session,
        user_id: int,
        skip: int = 0,
        limit: int = 50,
    ) -> list[QuizAttempt]:
        """Attempts for a user, most recent first."""
        stmt = (
            select(QuizAttempt)
            .where(QuizAttempt.user_id == user_id)
            .order_by(QuizAttempt.completed_at.desc(), QuizAttempt.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def latest_for_user(self, session: Session, user_id: int) -> QuizAttempt | None:
        attempts = self.list_for_user(session, user_id, limit=1)
        return attempts[0] if attempts else None

    def count_for_user(self, session: Session, user_id: int) -> int:
        stmt = select(func.count()).select_from(QuizAttempt).where(QuizAttempt.user_id == user_id)
        return session.exec(stmt).one()

    def add(self, session: Session, attempt: QuizAttempt) -> QuizAttempt:
        """Insert without committing, but ensure id is populated."""
        session.add(attempt)
        session.flush()
        return attempt

    def create(self, session: Session, attempt: QuizAttempt) -> QuizAttempt:
        session.add(attempt)
        session.commit()
        session.refresh(attempt)
        return attempt
