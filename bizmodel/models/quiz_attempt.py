# bizmodel/models/quiz_attempt.py
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class QuizAttempt(SQLModel, table=True):
    """
    One completed quiz submission.

    quiz_data is opaque here (it only goes to the scoring engine). Attempts
    are never updated; they go away with their owner (ON DELETE CASCADE).
    """

    __tablename__ = "quiz_attempts"

    id: int | None = Field(default=None, primary_key=True)

    user_id: int = Field(
        foreign_key="users.id",
        ondelete="CASCADE",
        index=True,
    )

    quiz_data: dict[str, Any] = Field(
        sa_column=Column(JSON, nullable=False),
    )

    completed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
    )
