# bizmodel/schemas/report.py
from datetime import datetime

from bizmodel.schemas.base import CamelModel


class RankedMatchRead(CamelModel):
    business_model_id: str
    name: str
    score: float
    rank: int


class ReportRead(CamelModel):
    quiz_attempt_id: int
    completed_at: datetime
    matches: list[RankedMatchRead]
