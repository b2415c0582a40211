from __future__ import annotations

from typing import List

from pydantic import BaseModel

from src.pitchcoach.domain.models.coaching_session import FeedbackMetric


class ScoringResult(BaseModel):
    overall_score: float
    metrics: List[FeedbackMetric]

    def to_event_payload(self) -> dict:
        return {
            "overallScore": self.overall_score,
            "metrics": [metric.model_dump() for metric in self.metrics],
        }
