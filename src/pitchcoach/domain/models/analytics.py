from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field


class SessionStats(BaseModel):
    total_sessions: int
    ready_sessions: int
    in_progress_sessions: int
    completed_sessions: int
    failed_sessions: int
    average_score: Optional[float] = None
    # Mean score per feedback category across completed sessions.
    category_scores: Dict[str, float] = Field(default_factory=dict)
    total_practice_seconds: float = 0
    completion_rate: Optional[float] = None
