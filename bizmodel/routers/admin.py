# bizmodel/routers/admin.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from bizmodel.core.auth import require_admin_key
from bizmodel.core.payment_processor import PaymentProcessor, get_payment_processor
from bizmodel.database import get_session
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.schemas.admin import AdminPaymentRead, RefundCreate, RefundRead
from bizmodel.services.payment_service import PaymentService
from bizmodel.services.refund_service import RefundService
from bizmodel.services.staging_service import StagingService

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin_key)],
)

payment_repo = PaymentRepository()
user_repo = UserRepository()
refund_service = RefundService(payment_repo)
payment_service = PaymentService(
    payment_repo,
    user_repo,
    StagingService(StagedAccountRepository(), user_repo, QuizAttemptRepository()),
    refund_service,
)


@router.get("/payments", response_model=list[AdminPaymentRead])
def list_payments(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 100,
):
    """All payments, newest first (admin only)."""
    return payment_service.list_all_payments(session, skip, limit)


@router.post("/refunds", response_model=RefundRead, status_code=status.HTTP_201_CREATED)
def create_refund(
    payload: RefundCreate,
    session: Session = Depends(get_session),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """
    Refund part or all of a completed or duplicate payment (admin only).

    Refunds never re-lock the report the payment unlocked.
    """
    return refund_service.create_refund(session, processor, payload)


@router.get("/refunds", response_model=list[RefundRead])
def list_refunds(
    session: Session = Depends(get_session),
    skip: int = 0,
    limit: int = 100,
):
    return refund_service.list_refunds(session, skip, limit)
