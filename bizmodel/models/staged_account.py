# bizmodel/models/staged_account.py
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class StagedAccount(SQLModel, table=True):
    """
    Signup data held until the first payment completes.

    Nothing here is a user: no other table points at a staged account, and
    an abandoned checkout simply expires (expires_at) without leaving a
    durable trace.

    The password is hashed before the row is written.
    """

    __tablename__ = "staged_accounts"

    token: str = Field(primary_key=True, max_length=128)

    # Not unique: restaging the same email replaces the older row
    email: str = Field(index=True, max_length=320)

    password_hash: str

    name: str | None = Field(default=None, max_length=100)

    quiz_data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    expires_at: datetime = Field(index=True)

    # Checkout in progress for this staged account (reused on repeat clicks)
    processor_intent_id: str | None = Field(default=None, index=True)
    client_secret: str | None = None
    amount_cents: int | None = None


class AccountPromotion(SQLModel, table=True):
    """
    Record of a staged token that became a durable user.

    The staged row is deleted on promotion; this row is what lets a second
    promotion call (e.g. a redelivered payment webhook) answer with the same
    user id instead of creating another account.
    """

    __tablename__ = "account_promotions"

    staged_token: str = Field(primary_key=True, max_length=128)

    user_id: int = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        index=True,
    )

    quiz_attempt_id: int | None = Field(
        default=None,
        foreign_key="quiz_attempts.id",
        ondelete="SET NULL",
    )

    promoted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
