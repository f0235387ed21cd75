# bizmodel/schemas/payment.py
from datetime import datetime
from typing import Literal

from pydantic import Field, field_validator

from bizmodel.core.identity import StagedRef, UserRefField
from bizmodel.schemas.base import CamelModel, RequestModel


class Money(CamelModel):
    amount_cents: int
    currency: str


class ReportPricing(CamelModel):
    price: Money
    is_first_report: bool


class UnlockStatusRead(CamelModel):
    unlocked: bool
    price_if_locked: Money | None = None


class CreateUnlockPaymentRequest(RequestModel):
    """
    userId is a durable id (42) or a staged reference ("temp_<token>").

    quizAttemptId is required for durable users; a staged user's quiz
    answers travel with the staged record instead.
    """

    user_id: UserRefField
    quiz_attempt_id: int | None = Field(default=None, gt=0)


class PaymentIntentRead(CamelModel):
    """
    Result of a create-payment call.

    already_unlocked=True means the entitlement is already held and nothing
    was created; the other fields are then empty.
    """

    already_unlocked: bool
    client_secret: str | None = None
    payment_id: int | None = None
    processor_intent_id: str | None = None
    price: Money | None = None


class ConfirmPaymentRequest(RequestModel):
    """
    userId is optional and only meaningful for a staged checkout: with it,
    the buyer is logged in even when the webhook promoted the account first.
    """

    processor_intent_id: str = Field(min_length=1)
    user_id: UserRefField | None = None

    @field_validator("user_id")
    @classmethod
    def staged_only(cls, v):
        if v is not None and not isinstance(v, StagedRef):
            raise ValueError("userId must be a staged reference")
        return v


class ConfirmPaymentRead(CamelModel):
    status: Literal["pending", "completed", "failed", "duplicate"]
    user_id: int | None = None
    quiz_attempt_id: int | None = None
    unlocked: bool = False


class PaymentRead(CamelModel):
    id: int
    amount_cents: int
    currency: str
    purpose: str
    quiz_attempt_id: int | None = None
    status: str
    retakes_granted: int
    created_at: datetime
    completed_at: datetime | None = None


class WebhookAck(CamelModel):
    received: bool = True
