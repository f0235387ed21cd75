# bizmodel/repositories/payment_repo.py
from sqlalchemy import update
from sqlmodel import Session, select

from bizmodel.core.clock import utcnow
from bizmodel.models.payment import (
    Payment,
    Refund,
    PURPOSE_ACCESS_PASS,
    PURPOSE_REPORT_UNLOCK,
    PURPOSE_RETAKE_BUNDLE,
    STATUS_COMPLETED,
    STATUS_DUPLICATE,
    STATUS_FAILED,
    STATUS_PENDING,
)


class PaymentRepository:
    """
    Data access layer for payments (the ledger) and refunds.

    NOTE:
      - Mostly no commits here; completing a payment can be part of an
        account promotion. The service owns the transaction.
    """

    # ---- Lookups ----

    def get_by_id(self, session: Session, payment_id: int) -> Payment | None:
        return session.get(Payment, payment_id)

    def get_by_processor_ref(self, session: Session, processor_ref: str) -> Payment | None:
        stmt = select(Payment).where(Payment.processor_ref == processor_ref)
        return session.exec(stmt).first()

    def list_for_user(self, session: Session, user_id: int) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
        )
        return list(session.exec(stmt).all())

    def list_all(self, session: Session, skip: int = 0, limit: int = 100) -> list[Payment]:
        stmt = select(Payment).order_by(Payment.created_at.desc(), Payment.id.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    # ---- Entitlement queries ----

    def completed_unlock_for_attempt(self, session: Session, quiz_attempt_id: int) -> Payment | None:
        stmt = select(Payment).where(
            Payment.quiz_attempt_id == quiz_attempt_id,
            Payment.purpose == PURPOSE_REPORT_UNLOCK,
            Payment.status == STATUS_COMPLETED,
        )
        return session.exec(stmt).first()

    def has_completed(self, session: Session, user_id: int, purpose: str | None = None) -> bool:
        stmt = select(Payment.id).where(
            Payment.user_id == user_id,
            Payment.status == STATUS_COMPLETED,
        )
        if purpose is not None:
            stmt = stmt.where(Payment.purpose == purpose)
        return session.exec(stmt.limit(1)).first() is not None

    def has_access_pass(self, session: Session, user_id: int) -> bool:
        """Access passes never expire once completed."""
        return self.has_completed(session, user_id, PURPOSE_ACCESS_PASS)

    def retakes_granted(self, session: Session, user_id: int) -> int:
        stmt = select(Payment.retakes_granted).where(
            Payment.user_id == user_id,
            Payment.purpose == PURPOSE_RETAKE_BUNDLE,
            Payment.status == STATUS_COMPLETED,
        )
        return sum(session.exec(stmt).all())

    # ---- Writes ----

    def add(self, session: Session, payment: Payment) -> Payment:
        """Insert without committing, but ensure id is populated."""
        session.add(payment)
        session.flush()
        return payment

    def mark_completed(self, session: Session, payment: Payment) -> bool:
        """
        pending -> completed, guarded by the row version.

        Returns False when another writer changed the row first. Flushes
        only; a uniqueness violation (second completed unlock for the same
        attempt) surfaces as IntegrityError to the caller.
        """
        stmt = (
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.version == payment.version,
                Payment.status == STATUS_PENDING,
            )
            .values(
                status=STATUS_COMPLETED,
                completed_at=utcnow(),
                version=payment.version + 1,
            )
        )
        result = session.exec(stmt)  # type: ignore[call-overload]
        if (result.rowcount or 0) != 1:
            return False
        session.flush()
        session.refresh(payment)
        return True

    def mark_failed(self, session: Session, payment: Payment) -> None:
        self._set_status(session, payment, STATUS_FAILED)

    def mark_duplicate(self, session: Session, payment: Payment) -> None:
        self._set_status(session, payment, STATUS_DUPLICATE)

    def _set_status(self, session: Session, payment: Payment, status: str) -> None:
        payment.status = status
        payment.version += 1
        session.add(payment)
        session.flush()

    # ---- Refunds ----

    def add_refund(self, session: Session, refund: Refund) -> Refund:
        session.add(refund)
        session.commit()
        session.refresh(refund)
        return refund

    def update_refund(self, session: Session, refund: Refund) -> Refund:
        session.add(refund)
        session.commit()
        session.refresh(refund)
        return refund

    def list_refunds_for_payment(self, session: Session, payment_id: int) -> list[Refund]:
        stmt = select(Refund).where(Refund.payment_id == payment_id).order_by(Refund.created_at)
        return list(session.exec(stmt).all())

    def list_all_refunds(self, session: Session, skip: int = 0, limit: int = 100) -> list[Refund]:
        stmt = select(Refund).order_by(Refund.created_at.desc(), Refund.id.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())
