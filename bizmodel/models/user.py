# bizmodel/models/user.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Durable account.

    Rows only exist for real accounts: a signup that has not paid yet lives
    in `staged_accounts` (see models/staged_account.py) and gets a row here
    when the payment completes.

    Deleting a user removes its quiz attempts, payments, refunds, reset
    tokens and login sessions through ON DELETE CASCADE.
    """

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)

    # Stored lower-cased; unique among durable users
    email: str = Field(
        unique=True,
        index=True,
        max_length=320,
    )

    password_hash: str

    name: str | None = Field(
        default=None,
        max_length=100,
        description="Display name",
    )

    is_unsubscribed: bool = Field(
        default=False,
        description="Opted out of non-transactional email",
    )

    # Bumped on password change/reset; fallback entries from older
    # versions no longer restore a session
    session_version: int = Field(default=1)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Last profile / password change (UTC)",
    )


class PasswordResetToken(SQLModel, table=True):
    """
    Single-use password reset token.

    Deleted as soon as it is used; rejected once expires_at has passed.
    """

    __tablename__ = "password_reset_tokens"

    token: str = Field(primary_key=True, max_length=128)

    user_id: int = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        index=True,
    )

    expires_at: datetime

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class LoginSession(SQLModel, table=True):
    """
    Primary server-side session, keyed by the id carried in the cookie.
    """

    __tablename__ = "sessions"

    sid: str = Field(primary_key=True, max_length=128)

    user_id: int = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        index=True,
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    expires_at: datetime
