# bizmodel/services/report_service.py
from sqlmodel import Session

from bizmodel.core.errors import PaymentRequired, REASON_REPORT_LOCKED
from bizmodel.core.identity import DurableRef
from bizmodel.core.scoring_client import ScoringEngine
from bizmodel.schemas.report import RankedMatchRead, ReportRead
from bizmodel.services.quiz_service import QuizService
from bizmodel.services.unlock_service import UnlockService


class ReportService:
    """Full report bodies, served only after a server-side unlock check."""

    def __init__(self, quiz: QuizService, unlock: UnlockService):
        self.quiz = quiz
        self.unlock = unlock

    def get_full_report(
        self,
        session: Session,
        engine: ScoringEngine,
        user_id: int,
        quiz_attempt_id: int,
    ) -> ReportRead:
        """
        Raises:
            NotFound(404) / Forbidden(403): attempt missing or not the caller's.
            PaymentRequired(402, reason="report-locked"): with the current price.
        """
        attempt = self.quiz.get_owned_attempt(session, user_id, quiz_attempt_id)

        status = self.unlock.get_unlock_status(session, DurableRef(user_id), attempt.id)
        if not status.unlocked:
            raise PaymentRequired(
                REASON_REPORT_LOCKED,
                "Unlock this report to see your full results.",
                price=status.price_if_locked.model_dump(by_alias=True),
            )

        matches = engine.score_business_models(attempt.quiz_data)
        return ReportRead(
            quiz_attempt_id=attempt.id,
            completed_at=attempt.completed_at,
            matches=[
                RankedMatchRead(
                    business_model_id=m.business_model_id,
                    name=m.name,
                    score=m.score,
                    rank=m.rank,
                )
                for m in matches
            ],
        )
