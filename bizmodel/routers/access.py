# bizmodel/routers/access.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from bizmodel.core.auth import require_auth
from bizmodel.database import get_session
from bizmodel.models.user import User
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.schemas.access import AccessSnapshot, ClientAccessState, ReconcileResult
from bizmodel.services.access_service import AccessService
from bizmodel.services.staging_service import StagingService
from bizmodel.services.unlock_service import UnlockService

router = APIRouter(prefix="/access", tags=["Access cache"])

attempt_repo = QuizAttemptRepository()
staging = StagingService(StagedAccountRepository(), UserRepository(), attempt_repo)
service = AccessService(attempt_repo, UnlockService(PaymentRepository(), attempt_repo, staging))


@router.get("/snapshot", response_model=AccessSnapshot)
def access_snapshot(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """Authoritative values for the client's cached access flags."""
    return service.build_snapshot(session, current_user)


@router.post("/reconcile", response_model=ReconcileResult)
def reconcile_access(
    payload: ClientAccessState,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    """
    Compare the client's cached flags with the server's view.

    Returns the snapshot plus the keys the client should overwrite.
    """
    return service.reconcile(session, current_user, payload)
