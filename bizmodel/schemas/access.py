# bizmodel/schemas/access.py
from typing import Any

from pydantic import ConfigDict

from bizmodel.schemas.base import CamelModel


class AccessSnapshot(CamelModel):
    """
    Authoritative values for the client's advisory local-storage keys.

    The client may cache these to speed up rendering; it must not send them
    back as proof of anything.
    """

    current_quiz_attempt_id: int | None = None
    has_unlocked_analysis: bool = False
    has_completed_quiz: bool = False
    user_email: str | None = None
    quiz_data: dict[str, Any] | None = None


class ClientAccessState(CamelModel):
    """
    What the client currently has cached. Every key is optional and unknown
    keys are ignored (older clients send extra flags).
    """

    model_config = ConfigDict(extra="ignore")

    current_quiz_attempt_id: int | None = None
    has_unlocked_analysis: bool | None = None
    has_completed_quiz: bool | None = None
    user_email: str | None = None
    quiz_data: dict[str, Any] | None = None
    congratulations_shown: bool | None = None


class ReconcileResult(CamelModel):
    snapshot: AccessSnapshot
    stale_keys: list[str]
    congratulations_shown: bool | None = None
