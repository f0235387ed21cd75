# bizmodel/schemas/quiz.py
from datetime import datetime
from typing import Any

from pydantic import field_validator

from bizmodel.schemas.base import CamelModel, RequestModel


class QuizSubmission(RequestModel):
    """Payload for recording a quiz attempt; answers are opaque here."""

    quiz_data: dict[str, Any]

    @field_validator("quiz_data")
    @classmethod
    def not_empty(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not v:
            raise ValueError("quizData cannot be empty")
        return v


class QuizAttemptRead(CamelModel):
    id: int
    quiz_data: dict[str, Any]
    completed_at: datetime


class QuizAttemptCreated(CamelModel):
    """
    Response for a recorded attempt.

    remaining_retakes is None when the user holds an access pass
    (retakes are unconstrained).
    """

    id: int
    completed_at: datetime
    remaining_retakes: int | None


class RetakeStatus(CamelModel):
    can_submit: bool
    remaining_retakes: int | None
    has_access_pass: bool
