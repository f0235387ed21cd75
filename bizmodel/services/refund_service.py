# bizmodel/services/refund_service.py
from sqlmodel import Session

from bizmodel.core.clock import utcnow
from bizmodel.core.errors import InvalidRequest, NotFound, UpstreamError
from bizmodel.core.logging import get_logger
from bizmodel.core.payment_processor import PaymentProcessor, ProcessorError
from bizmodel.models.payment import Payment, Refund, STATUS_COMPLETED, STATUS_DUPLICATE
from bizmodel.repositories.payment_repo import PaymentRepository
from bizmodel.schemas.admin import RefundCreate

logger = get_logger(__name__)

REFUND_PENDING = "pending"
REFUND_SUCCEEDED = "succeeded"
REFUND_FAILED = "failed"

REFUNDABLE_STATUSES = (STATUS_COMPLETED, STATUS_DUPLICATE)


class RefundService:
    """
    Admin refunds, plus the automatic refund of duplicate completions.

    Rules:
      - only completed or duplicate payments with a processor reference
        can be refunded
      - amount + already succeeded refunds <= payment amount
      - a refund never re-locks the report or revokes a pass
    """

    def __init__(self, payment_repo: PaymentRepository):
        self.payment_repo = payment_repo

    def refundable_cents(self, session: Session, payment_id: int, amount_cents: int) -> int:
        refunded = sum(
            r.amount_cents
            for r in self.payment_repo.list_refunds_for_payment(session, payment_id)
            if r.status == REFUND_SUCCEEDED
        )
        return amount_cents - refunded

    def create_refund(
        self,
        session: Session,
        processor: PaymentProcessor,
        payload: RefundCreate,
    ) -> Refund:
        """
        Record and submit a refund.

        Raises:
            NotFound(404): unknown payment.
            InvalidRequest(400): payment not refundable / amount too large.
            UpstreamError(502): processor refused; the refund row stays as failed.
        """
        payment = self.payment_repo.get_by_id(session, payload.payment_id)
        if payment is None:
            raise NotFound("Payment not found")
        if payment.status not in REFUNDABLE_STATUSES or not payment.processor_ref:
            raise InvalidRequest("Only completed or duplicate payments can be refunded")

        available = self.refundable_cents(session, payment.id, payment.amount_cents)
        if payload.amount_cents > available:
            raise InvalidRequest(
                f"Refund amount exceeds refundable balance ({available} cents)"
            )

        try:
            return self._submit(
                session,
                processor,
                payment,
                payload.amount_cents,
                payload.reason,
                payload.admin_note,
            )
        except ProcessorError as e:
            raise UpstreamError("Refund failed at payment processor") from e

    def refund_duplicate(
        self,
        session: Session,
        processor: PaymentProcessor,
        payment: Payment,
    ) -> Refund | None:
        """
        Give the full amount of a duplicate completion back.

        A processor failure is logged and leaves a failed refund row; the
        payment stays refundable through create_refund.
        """
        if not payment.processor_ref:
            logger.error("Duplicate payment %s has no processor reference, refund by hand", payment.id)
            return None
        try:
            return self._submit(
                session,
                processor,
                payment,
                payment.amount_cents,
                "duplicate",
                "Automatic refund: attempt already unlocked by another payment",
            )
        except ProcessorError:
            return None

    def _submit(
        self,
        session: Session,
        processor: PaymentProcessor,
        payment: Payment,
        amount_cents: int,
        reason: str,
        admin_note: str | None,
    ) -> Refund:
        """Record a pending refund, then ask the processor. Re-raises ProcessorError."""
        refund = self.payment_repo.add_refund(
            session,
            Refund(
                payment_id=payment.id,
                amount_cents=amount_cents,
                currency=payment.currency,
                reason=reason,
                admin_note=admin_note,
                status=REFUND_PENDING,
            ),
        )

        try:
            refund.processor_refund_id = processor.refund(payment.processor_ref, amount_cents, reason)
        except ProcessorError as e:
            refund.status = REFUND_FAILED
            refund.processed_at = utcnow()
            self.payment_repo.update_refund(session, refund)
            logger.error("Refund %s for payment %s failed: %s", refund.id, payment.id, e)
            raise

        refund.status = REFUND_SUCCEEDED
        refund.processed_at = utcnow()
        refund = self.payment_repo.update_refund(session, refund)
        logger.info("Refund %s processed for payment %s (%s cents)", refund.id, payment.id, refund.amount_cents)
        return refund

    def list_refunds(self, session: Session, skip: int = 0, limit: int = 100) -> list[Refund]:
        return self.payment_repo.list_all_refunds(session, skip, limit)
