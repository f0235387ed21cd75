# bizmodel/services/payment_service.py
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from bizmodel.core.clock import utcnow
from bizmodel.core.errors import InvalidRequest, NotFound, UpstreamError, UserAlreadyExists
from bizmodel.core.identity import StagedRef
from bizmodel.core.logging import get_logger, mask
from bizmodel.core.payment_processor import (
    IntentStatus,
    InvalidWebhook,
    PaymentProcessor,
    ProcessorError,
)
from bizmodel.models.payment import (
    Payment,
    PURPOSE_ACCESS_PASS,
    PURPOSE_REPORT_UNLOCK,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
)
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.services.email_service import TEMPLATE_PAYMENT_RECEIPT, TEMPLATE_WELCOME
from bizmodel.services.refund_service import RefundService
from bizmodel.services.staging_service import StagingService
from bizmodel.services.unlock_service import META_STAGED_TOKEN

logger = get_logger(__name__)


@dataclass
class PendingEmail:
    template: str
    recipient: str
    data: dict[str, Any]


@dataclass
class PaymentOutcome:
    """
    What applying a processor status did to the ledger.

    promoted is True only for the call that turned a staged account into a
    durable user (replays report False). emails are for the caller to queue.
    """

    status: str
    user_id: int | None = None
    quiz_attempt_id: int | None = None
    unlocked: bool = False
    promoted: bool = False
    emails: list[PendingEmail] = field(default_factory=list)


class PaymentService:
    """
    Apply processor results to the ledger.

    Both entry points (client confirmation and processor webhook) funnel into
    apply_intent_status(), which is idempotent: a redelivered webhook or a
    confirmation racing the webhook finds the finished state and changes nothing.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        user_repo: UserRepository,
        staging: StagingService,
        refunds: RefundService,
    ):
        self.payment_repo = payment_repo
        self.user_repo = user_repo
        self.staging = staging
        self.refunds = refunds

    # -------- Entry points --------

    def confirm_intent(
        self,
        session: Session,
        processor: PaymentProcessor,
        processor_intent_id: str,
    ) -> PaymentOutcome:
        """
        Client-initiated confirmation: ask the processor, then apply.

        Raises:
            UpstreamError(502): the processor could not be asked.
            NotFound(404): the intent is not ours.
        """
        try:
            intent = processor.confirm_intent(processor_intent_id)
        except ProcessorError as e:
            raise UpstreamError("Could not confirm payment with processor") from e
        return self.apply_intent_status(session, processor, intent)

    def handle_webhook(
        self,
        session: Session,
        processor: PaymentProcessor,
        payload: bytes,
        signature: str | None,
    ) -> PaymentOutcome | None:
        """
        Processor webhook. Events other than succeeded/failed are acknowledged
        and ignored (None).

        Raises:
            InvalidRequest(400): bad payload or signature.
        """
        try:
            event = processor.parse_webhook(payload, signature)
        except InvalidWebhook as e:
            logger.warning("Rejected webhook: %s", e)
            raise InvalidRequest(str(e)) from e

        if event.intent is None:
            logger.debug("Ignoring webhook event %s", event.event_type)
            return None

        try:
            return self.apply_intent_status(session, processor, event.intent)
        except NotFound:
            # Not ours (or already gone). Retrying will not change that.
            logger.warning(
                "Webhook %s for unknown intent %s",
                event.event_type,
                mask(event.intent.processor_intent_id, 10),
            )
            return None
        except UserAlreadyExists:
            logger.error(
                "Paid staged checkout %s could not be promoted (email already registered), refund required",
                mask(event.intent.processor_intent_id, 10),
            )
            return None

    # -------- Core --------

    def apply_intent_status(
        self,
        session: Session,
        processor: PaymentProcessor,
        intent: IntentStatus,
    ) -> PaymentOutcome:
        staged_token = intent.metadata.get(META_STAGED_TOKEN)
        payment = self.payment_repo.get_by_processor_ref(session, intent.processor_intent_id)

        if payment is None and staged_token:
            return self._apply_staged(session, intent, StagedRef(staged_token))
        if payment is None:
            raise NotFound("Payment not found")

        if intent.state == "succeeded":
            return self._complete(session, processor, payment)
        if intent.state == "failed":
            return self._fail(session, payment)
        return self._outcome(session, payment)

    def _complete(self, session: Session, processor: PaymentProcessor, payment: Payment) -> PaymentOutcome:
        if payment.status != STATUS_PENDING:
            return self._outcome(session, payment)

        try:
            completed = self.payment_repo.mark_completed(session, payment)
            session.commit()
        except IntegrityError:
            # Another payment already unlocked this attempt; keep exactly one
            # completed and give this one back.
            session.rollback()
            session.refresh(payment)
            self.payment_repo.mark_duplicate(session, payment)
            session.commit()
            logger.warning(
                "Duplicate completion for attempt %s: payment %s (intent %s), refunding",
                payment.quiz_attempt_id,
                payment.id,
                mask(payment.processor_ref, 10),
            )
            self.refunds.refund_duplicate(session, processor, payment)
            return self._outcome(session, payment)

        if not completed:
            # Lost the version race to a concurrent confirmation
            session.refresh(payment)
            return self._outcome(session, payment)

        logger.info("Payment %s completed (%s)", payment.id, payment.purpose)
        outcome = self._outcome(session, payment)
        user = self.user_repo.get_by_id(session, payment.user_id)
        if user is not None:
            outcome.emails.append(self._receipt(user.email, user.name, payment))
        return outcome

    def _fail(self, session: Session, payment: Payment) -> PaymentOutcome:
        if payment.status == STATUS_PENDING:
            self.payment_repo.mark_failed(session, payment)
            session.commit()
            logger.info("Payment %s failed", payment.id)
        return self._outcome(session, payment)

    def _apply_staged(self, session: Session, intent: IntentStatus, ref: StagedRef) -> PaymentOutcome:
        if intent.state == "failed":
            staged = self.staging.get_staged(session, ref)
            if staged is not None:
                # Let the next checkout attempt start from a fresh intent
                staged.processor_intent_id = None
                staged.client_secret = None
                session.add(staged)
                session.commit()
            logger.info("Staged checkout %s failed", mask(ref.token))
            return PaymentOutcome(status=STATUS_FAILED)

        if intent.state != "succeeded":
            return PaymentOutcome(status=STATUS_PENDING)

        promotion = self.staging.promote_staged_account(session, ref)

        payment = Payment(
            user_id=promotion.user_id,
            amount_cents=intent.amount_cents,
            currency=intent.currency,
            purpose=PURPOSE_REPORT_UNLOCK,
            quiz_attempt_id=promotion.quiz_attempt_id,
            processor_ref=intent.processor_intent_id,
            status=STATUS_COMPLETED,
            completed_at=utcnow(),
        )
        try:
            self.payment_repo.add(session, payment)
            session.commit()
        except IntegrityError:
            # Concurrent delivery recorded it first
            session.rollback()
            existing = self.payment_repo.get_by_processor_ref(session, intent.processor_intent_id)
            if existing is None:
                raise
            return self._outcome(session, existing)

        logger.info("Staged checkout paid: user %s, payment %s", promotion.user_id, payment.id)
        outcome = self._outcome(session, payment)
        outcome.promoted = not promotion.already_promoted

        user = self.user_repo.get_by_id(session, promotion.user_id)
        if user is not None:
            if outcome.promoted:
                outcome.emails.append(PendingEmail(TEMPLATE_WELCOME, user.email, {"name": user.name}))
            outcome.emails.append(self._receipt(user.email, user.name, payment))
        return outcome

    # -------- Helpers --------

    def _outcome(self, session: Session, payment: Payment) -> PaymentOutcome:
        unlocked = False
        if payment.purpose == PURPOSE_REPORT_UNLOCK and payment.quiz_attempt_id is not None:
            unlocked = (
                self.payment_repo.has_access_pass(session, payment.user_id)
                or self.payment_repo.completed_unlock_for_attempt(session, payment.quiz_attempt_id) is not None
            )
        elif payment.purpose == PURPOSE_ACCESS_PASS:
            unlocked = payment.status == STATUS_COMPLETED
        return PaymentOutcome(
            status=payment.status,
            user_id=payment.user_id,
            quiz_attempt_id=payment.quiz_attempt_id,
            unlocked=unlocked,
        )

    @staticmethod
    def _receipt(email: str, name: str | None, payment: Payment) -> PendingEmail:
        return PendingEmail(
            TEMPLATE_PAYMENT_RECEIPT,
            email,
            {
                "name": name,
                "amount_cents": payment.amount_cents,
                "currency": payment.currency,
                "purpose": payment.purpose,
                "payment_id": payment.id,
            },
        )

    # -------- History --------

    def list_user_payments(self, session: Session, user_id: int) -> list[Payment]:
        return self.payment_repo.list_for_user(session, user_id)

    def list_all_payments(self, session: Session, skip: int = 0, limit: int = 100) -> list[Payment]:
        return self.payment_repo.list_all(session, skip, limit)
