# bizmodel/models/payment.py
from datetime import datetime, timezone

from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field

# purpose values
PURPOSE_REPORT_UNLOCK = "report-unlock"
PURPOSE_ACCESS_PASS = "access-pass"
PURPOSE_RETAKE_BUNDLE = "quiz-retake-bundle"

# status values
STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
# Paid, but the attempt was already unlocked by another payment; refunded
STATUS_DUPLICATE = "duplicate"


class Payment(SQLModel, table=True):
    """
    One payment attempt.

    Lifecycle:
      pending   -> completed (processor confirmed)
      pending   -> failed    (processor declined)
      pending   -> duplicate (paid after another payment unlocked the same
                             attempt; refunded automatically)
      completed -> (immutable; refunds are separate rows)

    A completed "report-unlock" payment linked to quiz attempt X is the fact
    that unlocks X's report. The partial unique index below is the storage
    level guarantee that at most one such payment exists per attempt, however
    many intents a double click or a second tab produced.
    """

    __tablename__ = "payments"
    __table_args__ = (
        Index(
            "uq_completed_payment_per_attempt",
            "quiz_attempt_id",
            "purpose",
            unique=True,
            postgresql_where=text("status = 'completed'"),
            sqlite_where=text("status = 'completed'"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)

    user_id: int = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        index=True,
    )

    amount_cents: int = Field(ge=0)

    currency: str = Field(default="usd", max_length=3)

    # report-unlock | access-pass | quiz-retake-bundle
    purpose: str = Field(index=True)

    quiz_attempt_id: int | None = Field(
        default=None,
        foreign_key="quiz_attempts.id",
        ondelete="CASCADE",
        index=True,
    )

    # Processor intent / order id; one ledger row per processor payment
    processor_ref: str | None = Field(default=None, unique=True, index=True)

    # pending | completed | failed | duplicate
    status: str = Field(default=STATUS_PENDING, index=True)

    retakes_granted: int = Field(default=0, ge=0)

    # Optimistic locking for status transitions
    version: int = Field(default=1)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    completed_at: datetime | None = None


class Refund(SQLModel, table=True):
    """
    Refund issued against a payment (admin action, or automatic for a
    duplicate completion).

    Refunds do not re-lock anything: report access granted by the payment
    stays granted.
    """

    __tablename__ = "refunds"

    id: int | None = Field(default=None, primary_key=True)

    payment_id: int = Field(
        foreign_key="payments.id",
        ondelete="CASCADE",
        index=True,
    )

    amount_cents: int = Field(gt=0)

    currency: str = Field(default="usd", max_length=3)

    # requested_by_customer | duplicate | fraudulent | other
    reason: str

    # pending | succeeded | failed
    status: str = Field(default="pending", index=True)

    processor_refund_id: str | None = None

    admin_note: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    processed_at: datetime | None = None
