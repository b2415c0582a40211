from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.pitchcoach.domain.models.coaching_session import (
    CoachingSession,
    FeedbackMetric,
    SessionStatus,
    TranscriptChunk,
)


class Base(DeclarativeBase):
    pass


class CoachingSessionORM(Base):
    __tablename__ = "coaching_sessions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    scenario: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    language: Mapped[str] = mapped_column(String, nullable=False, default="en")
    # Chunks and metrics are small, append-only documents; JSON keeps them
    # with their parent row.
    transcript: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    duration: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    feedback_metrics: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    sample_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=16000)
    audio_format: Mapped[str] = mapped_column(String, nullable=False, default="pcm")
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, session: CoachingSession) -> "CoachingSessionORM":
        orm = cls(id=session.id)
        orm.update_from_domain(session)
        return orm

    def update_from_domain(self, session: CoachingSession) -> None:
        self.tenant_id = session.tenant_id
        self.user_id = session.user_id
        self.scenario = session.scenario
        self.status = session.status.value
        self.language = session.language
        self.transcript = [chunk.model_dump(mode="json") for chunk in session.transcript]
        self.duration = session.duration
        self.overall_score = session.overall_score
        self.feedback_metrics = [metric.model_dump(mode="json") for metric in session.feedback_metrics]
        self.sample_rate = session.sample_rate
        self.audio_format = session.audio_format
        self.started_at = session.started_at
        self.completed_at = session.completed_at
        self.failure_reason = session.failure_reason
        self.created_at = session.created_at
        self.updated_at = session.updated_at

    def to_domain(self) -> CoachingSession:
        return CoachingSession(
            id=self.id,
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            scenario=self.scenario,
            status=SessionStatus(self.status),
            language=self.language,
            transcript=[TranscriptChunk.model_validate(c) for c in self.transcript or []],
            duration=self.duration,
            overall_score=self.overall_score,
            feedback_metrics=[FeedbackMetric.model_validate(m) for m in self.feedback_metrics or []],
            sample_rate=self.sample_rate,
            audio_format=self.audio_format,
            started_at=self.started_at,
            completed_at=self.completed_at,
            failure_reason=self.failure_reason,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
