# bizmodel/routers/payments.py
from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlmodel import Session

from bizmodel.core.auth import get_session_gate, require_auth
from bizmodel.core.payment_processor import PaymentProcessor, get_payment_processor
from bizmodel.core.session import SessionGate
from bizmodel.database import get_session
from bizmodel.models.user import User
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.schemas.payment import (
    ConfirmPaymentRead,
    ConfirmPaymentRequest,
    PaymentIntentRead,
    PaymentRead,
    WebhookAck,
)
from bizmodel.services.email_service import EmailSender, get_email_sender
from bizmodel.services.payment_service import PaymentOutcome, PaymentService
from bizmodel.services.refund_service import RefundService
from bizmodel.services.staging_service import StagingService
from bizmodel.services.unlock_service import UnlockService

router = APIRouter(prefix="/payments", tags=["Payments"])

user_repo = UserRepository()
payment_repo = PaymentRepository()
attempt_repo = QuizAttemptRepository()
staging = StagingService(StagedAccountRepository(), user_repo, attempt_repo)
unlock_service = UnlockService(payment_repo, attempt_repo, staging)
service = PaymentService(payment_repo, user_repo, staging, RefundService(payment_repo))


def _queue_emails(background_tasks: BackgroundTasks, sender: EmailSender, outcome: PaymentOutcome) -> None:
    for email in outcome.emails:
        background_tasks.add_task(sender.send, email.template, email.recipient, email.data)


# -------- Checkout --------


@router.post("/access-pass", response_model=PaymentIntentRead)
def buy_access_pass(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """Unlimited reports and retakes. No-op when already held."""
    return unlock_service.create_access_pass_payment(session, processor, current_user.id)


@router.post("/retake-bundle", response_model=PaymentIntentRead)
def buy_retake_bundle(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    processor: PaymentProcessor = Depends(get_payment_processor),
):
    """Extra quiz attempts. No-op for access pass holders."""
    return unlock_service.create_retake_bundle_payment(session, processor, current_user.id)


# -------- Confirmation --------


@router.post("/confirm", response_model=ConfirmPaymentRead)
def confirm_payment(
    payload: ConfirmPaymentRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    processor: PaymentProcessor = Depends(get_payment_processor),
    gate: SessionGate = Depends(get_session_gate),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Called by the client after the processor's client-side confirmation.

    The processor is asked for the real status; nothing the client says
    about the payment is trusted. A staged checkout that became a durable
    account is logged in here: either this call promoted it, or the client
    sent the staged userId whose promotion produced the paying user (the
    webhook got there first).
    """
    outcome = service.confirm_intent(session, processor, payload.processor_intent_id)
    if outcome.user_id is not None and (
        outcome.promoted
        or (
            payload.user_id is not None
            and staging.promoted_user_id(session, payload.user_id) == outcome.user_id
        )
    ):
        gate.establish_session(request, response, session, outcome.user_id)
    _queue_emails(background_tasks, sender, outcome)
    return ConfirmPaymentRead(
        status=outcome.status,
        user_id=outcome.user_id,
        quiz_attempt_id=outcome.quiz_attempt_id,
        unlocked=outcome.unlocked,
    )


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(default=None),
    session: Session = Depends(get_session),
    processor: PaymentProcessor = Depends(get_payment_processor),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Processor webhook (raw body, signature in the Stripe-Signature header).

    Redelivered events are harmless: the ledger update is idempotent.
    """
    payload = await request.body()
    outcome = await run_in_threadpool(
        service.handle_webhook, session, processor, payload, stripe_signature
    )
    if outcome is not None:
        _queue_emails(background_tasks, sender, outcome)
    return WebhookAck()


# -------- History --------


@router.get("/history", response_model=list[PaymentRead])
def payment_history(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
):
    return service.list_user_payments(session, current_user.id)
