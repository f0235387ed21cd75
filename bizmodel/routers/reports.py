# bizmodel/routers/reports.py
from fastapi import APIRouter, Depends
from pydantic import PositiveInt
from sqlmodel import Session

from bizmodel.core.auth import require_auth
from bizmodel.core.scoring_client import ScoringEngine, get_scoring_engine
from bizmodel.database import get_session
from bizmodel.models.user import User
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.schemas.report import ReportRead
from bizmodel.services.quiz_service import QuizService
from bizmodel.services.report_service import ReportService
from bizmodel.services.staging_service import StagingService
from bizmodel.services.unlock_service import UnlockService

router = APIRouter(prefix="/reports", tags=["Reports"])

attempt_repo = QuizAttemptRepository()
payment_repo = PaymentRepository()
staging = StagingService(StagedAccountRepository(), UserRepository(), attempt_repo)
service = ReportService(
    QuizService(attempt_repo, payment_repo),
    UnlockService(payment_repo, attempt_repo, staging),
)


@router.get("/{quiz_attempt_id}", response_model=ReportRead)
def get_report(
    quiz_attempt_id: PositiveInt,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    """
    Full report for one of the caller's attempts.

    The unlock is checked here on every call; whatever the client has cached
    about unlocks is irrelevant. Locked reports answer 402 with
    detail.reason = "report-locked" and the price to unlock.
    """
    return service.get_full_report(session, engine, current_user.id, quiz_attempt_id)
