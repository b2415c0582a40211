from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class SessionStatus(str, Enum):
    READY = "ready"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


# Forward-only lifecycle; nothing ever returns to READY.
_ALLOWED_TRANSITIONS = {
    SessionStatus.READY: {SessionStatus.IN_PROGRESS, SessionStatus.FAILED},
    SessionStatus.IN_PROGRESS: {SessionStatus.COMPLETED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
}


class TranscriptChunk(BaseModel):
    """One transcribed fragment. Immutable once appended to a session."""

    model_config = {"frozen": True}

    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_final: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("transcript chunk text must not be empty")
        return value


class FeedbackMetric(BaseModel):
    category: str
    score: float
    feedback: str = ""


class CoachingSession(BaseModel):
    """A single practice recording and its transcript/scoring lifecycle."""

    id: UUID
    user_id: Optional[str] = None
    scenario: str
    status: SessionStatus
    language: str = "en"
    transcript: List[TranscriptChunk] = Field(default_factory=list)

    # Fixed once, at completion.
    duration: float = 0
    overall_score: float = 0
    feedback_metrics: List[FeedbackMetric] = Field(default_factory=list)

    # Describes the ingested audio stream.
    sample_rate: int = 16000
    audio_format: str = "pcm"

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    # Logical tenant/organization this session belongs to.
    tenant_id: str
