# bizmodel/core/scoring_client.py
"""Client for the external business-model recommendation engine."""

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from bizmodel.core.config import get_settings
from bizmodel.core.errors import ServiceUnavailable, UpstreamError
from bizmodel.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RankedMatch:
    """One recommended business model, best first."""
    business_model_id: str
    name: str
    score: float
    rank: int


class ScoringEngine(Protocol):
    def score_business_models(self, quiz_data: dict[str, Any]) -> list[RankedMatch]: ...


class HttpScoringEngine:
    """
    Scoring engine reached over HTTP.

    POST {base_url}/score with {"quizData": ...}; the engine answers
    {"matches": [{"id", "name", "score"}, ...]} ordered best first.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def score_business_models(self, quiz_data: dict[str, Any]) -> list[RankedMatch]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(f"{self.base_url}/score", json={"quizData": quiz_data})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error("Scoring engine request failed: %s", e)
            raise UpstreamError("Recommendation engine unavailable") from e

        matches = []
        for rank, item in enumerate(data.get("matches", []), start=1):
            matches.append(
                RankedMatch(
                    business_model_id=str(item.get("id", "")),
                    name=item.get("name", ""),
                    score=float(item.get("score", 0)),
                    rank=rank,
                )
            )
        return matches


def get_scoring_engine() -> ScoringEngine:
    """
    FastAPI dependency returning the configured engine.

    Raises:
        ServiceUnavailable(503): if SCORING_SERVICE_URL is not set.
    """
    settings = get_settings()
    if not settings.SCORING_SERVICE_URL:
        raise ServiceUnavailable("Recommendation engine not configured")
    return HttpScoringEngine(settings.SCORING_SERVICE_URL, settings.SCORING_TIMEOUT_SECONDS)
