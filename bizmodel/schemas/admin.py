# bizmodel/schemas/admin.py
from datetime import datetime
from typing import Literal

from pydantic import Field

from bizmodel.schemas.base import CamelModel, RequestModel

RefundReason = Literal["requested_by_customer", "duplicate", "fraudulent", "other"]


class RefundCreate(RequestModel):
    payment_id: int = Field(gt=0)
    amount_cents: int = Field(gt=0)
    reason: RefundReason
    admin_note: str | None = Field(default=None, max_length=500)


class RefundRead(CamelModel):
    id: int
    payment_id: int
    amount_cents: int
    currency: str
    reason: str
    status: str
    processor_refund_id: str | None = None
    admin_note: str | None = None
    created_at: datetime
    processed_at: datetime | None = None


class AdminPaymentRead(CamelModel):
    id: int
    user_id: int
    amount_cents: int
    currency: str
    purpose: str
    quiz_attempt_id: int | None = None
    processor_ref: str | None = None
    status: str
    created_at: datetime
    completed_at: datetime | None = None
