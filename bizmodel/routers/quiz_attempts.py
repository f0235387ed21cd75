# bizmodel/routers/quiz_attempts.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from bizmodel.core.auth import require_auth
from bizmodel.database import get_session
from bizmodel.models.user import User
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.schemas.quiz import (
    QuizAttemptCreated,
    QuizAttemptRead,
    QuizSubmission,
    RetakeStatus,
)
from bizmodel.services.quiz_service import QuizService

router = APIRouter(prefix="/quiz-attempts", tags=["Quiz"])

service = QuizService(QuizAttemptRepository(), PaymentRepository())


@router.post("", response_model=QuizAttemptCreated, status_code=status.HTTP_201_CREATED)
def submit_quiz(
    payload: QuizSubmission,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Record a quiz attempt.

    The first attempt is free; later ones need a retake bundle or an access
    pass. Otherwise 402 with detail.reason = "quiz-retake-exhausted".
    """
    return service.submit_quiz(session, current_user.id, payload.quiz_data)


@router.get("", response_model=list[QuizAttemptRead])
def list_my_attempts(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    skip: int = 0,
    limit: int = 50,
):
    """The caller's attempts, most recent first."""
    return service.list_attempts(session, current_user.id, skip, limit)


@router.get("/retake-status", response_model=RetakeStatus)
def retake_status(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    return service.get_retake_status(session, current_user.id)
