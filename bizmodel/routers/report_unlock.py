# bizmodel/routers/report_unlock.py
from fastapi import APIRouter, Depends
from pydantic import PositiveInt
from sqlmodel import Session

from bizmodel.core.auth import get_current_user
from bizmodel.core.errors import Forbidden, InvalidRequest, NotAuthenticated
from bizmodel.core.identity import StagedRef, UserRef, parse_user_ref
from bizmodel.core.payment_processor import PaymentProcessor, get_payment_processor
from bizmodel.database import get_session
from bizmodel.models.user import User
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.schemas.payment import (
    CreateUnlockPaymentRequest,
    PaymentIntentRead,
    ReportPricing,
    UnlockStatusRead,
)
from bizmodel.services.staging_service import StagingService
from bizmodel.services.unlock_service import UnlockService

router = APIRouter(prefix="/report-unlock", tags=["Report unlock"])

attempt_repo = QuizAttemptRepository()
staging = StagingService(StagedAccountRepository(), UserRepository(), attempt_repo)
service = UnlockService(PaymentRepository(), attempt_repo, staging)


def _authorize(session: Session, ref: UserRef, current_user: User | None) -> None:
    """
    Durable refs must be the caller's own id. A staged ref is its own
    credential (unguessable token) but must still be live.
    """
    if isinstance(ref, StagedRef):
        staging.require_staged(session, ref)
        return
    if current_user is None:
        raise NotAuthenticated()
    if current_user.id != ref.user_id:
        raise Forbidden()


def _user_ref(value: str) -> UserRef:
    try:
        return parse_user_ref(value)
    except ValueError:
        raise InvalidRequest("Invalid userId")


@router.post("/create-payment", response_model=PaymentIntentRead)
def create_payment(
    payload: CreateUnlockPaymentRequest,
    session: Session = Depends(get_session),
    current_user: User | None = Depends(get_current_user),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """
    Start a report unlock checkout.

    Returns alreadyUnlocked=true (and creates nothing) when the report is
    already unlocked, so duplicate clicks and second tabs never double charge.
    """
    _authorize(session, payload.user_id, current_user)
    return service.create_unlock_payment(session, processor, payload.user_id, payload.quiz_attempt_id)


@router.get("/status/{user_id}/{quiz_attempt_id}", response_model=UnlockStatusRead)
def unlock_status(
    user_id: str,
    quiz_attempt_id: PositiveInt,
    session: Session = Depends(get_session),
    current_user: User | None = Depends(get_current_user),
):
    ref = _user_ref(user_id)
    _authorize(session, ref, current_user)
    return service.get_unlock_status(session, ref, quiz_attempt_id)


@router.get("/pricing/{user_id}", response_model=ReportPricing)
def pricing(
    user_id: str,
    session: Session = Depends(get_session),
    current_user: User | None = Depends(get_current_user),
):
    """Two tiers: first report, and every report after a completed unlock."""
    ref = _user_ref(user_id)
    _authorize(session, ref, current_user)
    return service.quote_report_price(session, ref)
