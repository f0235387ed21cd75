# bizmodel/services/unlock_service.py
from sqlmodel import Session

from bizmodel.core.config import get_settings
from bizmodel.core.errors import Forbidden, InvalidRequest, NotFound, UpstreamError
from bizmodel.core.identity import DurableRef, StagedRef, UserRef
from bizmodel.core.logging import get_logger, mask
from bizmodel.core.payment_processor import PaymentProcessor, ProcessorError
from bizmodel.models.payment import (
    Payment,
    PURPOSE_ACCESS_PASS,
    PURPOSE_REPORT_UNLOCK,
    PURPOSE_RETAKE_BUNDLE,
)
from bizmodel.models.quiz_attempt import QuizAttempt
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.repositories.quiz_attempt_repo import QuizAttemptRepository
from bizmodel.schemas.payment import (
    Money,
    PaymentIntentRead,
    ReportPricing,
    UnlockStatusRead,
)
from bizmodel.services.staging_service import StagingService

logger = get_logger(__name__)

# Processor metadata keys; payment_service reads them back from confirmations
META_PURPOSE = "purpose"
META_USER_ID = "user_id"
META_STAGED_TOKEN = "staged_token"
META_QUIZ_ATTEMPT_ID = "quiz_attempt_id"


class UnlockService:
    """
    Report unlock resolver: who can see which report, and at what price.

    Rules:
      - a report is unlocked iff a completed report-unlock payment exists
        for that exact attempt, or the user holds an access pass
      - two price tiers only: staged users and durable users who never
        completed a report unlock pay the first-report price; everyone
        else pays the returning price
      - payment creation checks the unlock status first and creates
        nothing when the entitlement is already held
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        attempt_repo: QuizAttemptRepository,
        staging: StagingService,
    ):
        self.payment_repo = payment_repo
        self.attempt_repo = attempt_repo
        self.staging = staging

    # -------- Reads --------

    def quote_report_price(self, session: Session, ref: UserRef) -> ReportPricing:
        settings = get_settings()
        is_first = True
        if isinstance(ref, DurableRef):
            is_first = not self.payment_repo.has_completed(
                session, ref.user_id, PURPOSE_REPORT_UNLOCK
            )
        amount = (
            settings.FIRST_REPORT_PRICE_CENTS
            if is_first
            else settings.RETURNING_REPORT_PRICE_CENTS
        )
        return ReportPricing(
            price=Money(amount_cents=amount, currency=settings.CURRENCY),
            is_first_report=is_first,
        )

    def is_unlocked(self, session: Session, user_id: int, quiz_attempt_id: int) -> bool:
        """Pure read; safe to call concurrently."""
        if self.payment_repo.has_access_pass(session, user_id):
            return True
        payment = self.payment_repo.completed_unlock_for_attempt(session, quiz_attempt_id)
        return payment is not None and payment.user_id == user_id

    def get_unlock_status(
        self,
        session: Session,
        ref: UserRef,
        quiz_attempt_id: int,
    ) -> UnlockStatusRead:
        # Staged users own no attempts yet, so nothing of theirs is unlocked
        if isinstance(ref, DurableRef) and self.is_unlocked(session, ref.user_id, quiz_attempt_id):
            return UnlockStatusRead(unlocked=True)
        return UnlockStatusRead(
            unlocked=False,
            price_if_locked=self.quote_report_price(session, ref).price,
        )

    # -------- Payment creation --------

    def create_unlock_payment(
        self,
        session: Session,
        processor: PaymentProcessor,
        ref: UserRef,
        quiz_attempt_id: int | None,
    ) -> PaymentIntentRead:
        """
        Start a report-unlock checkout.

        Durable users: verify the attempt is theirs, refuse when already
        unlocked (200 no-op), otherwise create an intent plus a pending ledger row.

        Staged users: the intent is attached to the staged record and reused
        on repeated calls; the ledger row is written when the payment
        completes and the account is promoted.

        Raises:
            InvalidRequest(400): durable user without quiz_attempt_id.
            NotFound(404): unknown attempt / staged record.
            Forbidden(403): attempt belongs to someone else.
            UpstreamError(502): processor call failed.
        """
        if isinstance(ref, StagedRef):
            return self._create_staged_unlock(session, processor, ref)

        if quiz_attempt_id is None:
            raise InvalidRequest("quizAttemptId is required")
        attempt = self._owned_attempt(session, ref.user_id, quiz_attempt_id)

        if self.is_unlocked(session, ref.user_id, attempt.id):
            logger.info("Attempt %s already unlocked; no intent created", attempt.id)
            return PaymentIntentRead(already_unlocked=True)

        pricing = self.quote_report_price(session, ref)
        return self._create_ledger_intent(
            session,
            processor,
            user_id=ref.user_id,
            purpose=PURPOSE_REPORT_UNLOCK,
            price=pricing.price,
            quiz_attempt_id=attempt.id,
            description=(
                "BizModelAI report unlock - "
                + ("first report" if pricing.is_first_report else "additional report")
            ),
        )

    def create_access_pass_payment(
        self,
        session: Session,
        processor: PaymentProcessor,
        user_id: int,
    ) -> PaymentIntentRead:
        if self.payment_repo.has_access_pass(session, user_id):
            return PaymentIntentRead(already_unlocked=True)
        settings = get_settings()
        return self._create_ledger_intent(
            session,
            processor,
            user_id=user_id,
            purpose=PURPOSE_ACCESS_PASS,
            price=Money(amount_cents=settings.ACCESS_PASS_PRICE_CENTS, currency=settings.CURRENCY),
            description="BizModelAI unlimited access pass",
        )

    def create_retake_bundle_payment(
        self,
        session: Session,
        processor: PaymentProcessor,
        user_id: int,
    ) -> PaymentIntentRead:
        """Access pass holders already retake without limit; nothing to buy."""
        if self.payment_repo.has_access_pass(session, user_id):
            return PaymentIntentRead(already_unlocked=True)
        settings = get_settings()
        return self._create_ledger_intent(
            session,
            processor,
            user_id=user_id,
            purpose=PURPOSE_RETAKE_BUNDLE,
            price=Money(amount_cents=settings.RETAKE_BUNDLE_PRICE_CENTS, currency=settings.CURRENCY),
            retakes_granted=settings.RETAKE_BUNDLE_SIZE,
            description=f"BizModelAI quiz retakes ({settings.RETAKE_BUNDLE_SIZE})",
        )

    # -------- Internals --------

    def _owned_attempt(self, session: Session, user_id: int, quiz_attempt_id: int) -> QuizAttempt:
        attempt = self.attempt_repo.get_by_id(session, quiz_attempt_id)
        if attempt is None:
            raise NotFound("Quiz attempt not found")
        if attempt.user_id != user_id:
            raise Forbidden("Quiz attempt belongs to another user")
        return attempt

    def _create_staged_unlock(
        self,
        session: Session,
        processor: PaymentProcessor,
        ref: StagedRef,
    ) -> PaymentIntentRead:
        staged = self.staging.require_staged(session, ref)
        price = self.quote_report_price(session, ref).price

        if staged.processor_intent_id and staged.client_secret:
            logger.info("Reusing intent %s for staged account", mask(staged.processor_intent_id, 10))
            return PaymentIntentRead(
                already_unlocked=False,
                client_secret=staged.client_secret,
                processor_intent_id=staged.processor_intent_id,
                price=Money(
                    amount_cents=staged.amount_cents or price.amount_cents,
                    currency=price.currency,
                ),
            )

        intent = self._call_processor(
            processor,
            price,
            {META_PURPOSE: PURPOSE_REPORT_UNLOCK, META_STAGED_TOKEN: ref.token},
            "BizModelAI report unlock - first report",
        )
        staged.processor_intent_id = intent.processor_intent_id
        staged.client_secret = intent.client_secret
        staged.amount_cents = price.amount_cents
        session.add(staged)
        session.commit()

        return PaymentIntentRead(
            already_unlocked=False,
            client_secret=intent.client_secret,
            processor_intent_id=intent.processor_intent_id,
            price=price,
        )

    def _create_ledger_intent(
        self,
        session: Session,
        processor: PaymentProcessor,
        user_id: int,
        purpose: str,
        price: Money,
        description: str,
        quiz_attempt_id: int | None = None,
        retakes_granted: int = 0,
    ) -> PaymentIntentRead:
        metadata = {META_PURPOSE: purpose, META_USER_ID: str(user_id)}
        if quiz_attempt_id is not None:
            metadata[META_QUIZ_ATTEMPT_ID] = str(quiz_attempt_id)

        intent = self._call_processor(processor, price, metadata, description)
        payment = self.payment_repo.add(
            session,
            Payment(
                user_id=user_id,
                amount_cents=price.amount_cents,
                currency=price.currency,
                purpose=purpose,
                quiz_attempt_id=quiz_attempt_id,
                processor_ref=intent.processor_intent_id,
                retakes_granted=retakes_granted,
            ),
        )
        session.commit()
        logger.info("Pending %s payment %s created for user %s", purpose, payment.id, user_id)

        return PaymentIntentRead(
            already_unlocked=False,
            client_secret=intent.client_secret,
            payment_id=payment.id,
            processor_intent_id=intent.processor_intent_id,
            price=price,
        )

    @staticmethod
    def _call_processor(processor: PaymentProcessor, price: Money, metadata: dict[str, str], description: str):
        try:
            return processor.create_intent(
                amount_cents=price.amount_cents,
                currency=price.currency,
                metadata=metadata,
                description=description,
            )
        except ProcessorError as e:
            raise UpstreamError("Payment processor unavailable") from e
