from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence
from uuid import UUID, uuid4

from src.pitchcoach.domain.models.coaching_session import (
    CoachingSession,
    FeedbackMetric,
    SessionStatus,
    TranscriptChunk,
)
from src.pitchcoach.errors import InvalidSessionTransition, SessionNotFound
from src.pitchcoach.infra.db.inmemory import InMemorySessionRepository
from src.pitchcoach.infra.db.repositories import SessionRepository
from src.pitchcoach.services.scoring.service import ScoringService, scoring_service
from src.pitchcoach.tenancy import get_current_tenant

logger = logging.getLogger(__name__)

# Confidence recorded for the transcript submitted at completion.
FINAL_TRANSCRIPT_CONFIDENCE = 0.9


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionService:
    """Owns the coaching-session lifecycle.

    All reads and writes go through a tenant-scoped repository. Status only
    moves forward (see ``SessionStatus.can_transition_to``); transcript
    chunks are append-only and stop being accepted once a session is
    terminal.
    """

    def __init__(self, repository: SessionRepository, scoring: ScoringService) -> None:
        self._repository = repository
        self._scoring = scoring

    def use_repository(self, repository: SessionRepository) -> None:
        self._repository = repository

    @property
    def repository(self) -> SessionRepository:
        return self._repository

    def create_session(
        self,
        *,
        scenario: str,
        user_id: Optional[str] = None,
        language: str = "en",
        start: bool = False,
    ) -> CoachingSession:
        """Create a session, either pre-created (``ready``) or already recording."""

        if not scenario.strip():
            raise ValueError("Scenario is required")

        now = _utcnow()
        session = CoachingSession(
            id=uuid4(),
            user_id=user_id,
            scenario=scenario,
            status=SessionStatus.IN_PROGRESS if start else SessionStatus.READY,
            language=language,
            started_at=now if start else None,
            created_at=now,
            updated_at=now,
            tenant_id=get_current_tenant(),
        )
        self._repository.save(session)
        return session

    def get_session(self, session_id: UUID) -> Optional[CoachingSession]:
        return self._repository.get(session_id)

    def require_session(self, session_id: UUID) -> CoachingSession:
        session = self._repository.get(session_id)
        if session is None:
            raise SessionNotFound(str(session_id))
        return session

    def list_sessions(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
    ) -> List[CoachingSession]:
        return list(self._repository.list_by_filters(user_id=user_id, status=status))

    def start_recording(self, session_id: UUID) -> CoachingSession:
        """Move a ``ready`` session to ``in-progress``. Already-running sessions are left as is."""

        session = self.require_session(session_id)
        if session.status == SessionStatus.IN_PROGRESS:
            return session
        self._transition(session, SessionStatus.IN_PROGRESS)
        session.started_at = _utcnow()
        self._repository.save(session)
        return session

    def append_transcript_chunks(self, session_id: UUID, chunks: Sequence[TranscriptChunk]) -> CoachingSession:
        session = self.require_session(session_id)
        if session.status.is_terminal:
            raise InvalidSessionTransition(
                f"Cannot append transcript to a {session.status.value} session"
            )
        session.transcript.extend(chunks)
        session.updated_at = _utcnow()
        self._repository.save(session)
        return session

    def record_stream_format(self, session_id: UUID, *, sample_rate: int, audio_format: str) -> CoachingSession:
        session = self.require_session(session_id)
        if session.sample_rate == sample_rate and session.audio_format == audio_format:
            return session
        session.sample_rate = sample_rate
        session.audio_format = audio_format
        session.updated_at = _utcnow()
        self._repository.save(session)
        return session

    def complete_session(
        self,
        session_id: UUID,
        *,
        final_transcript: str,
        duration: float,
        feedback_metrics: Optional[Iterable[FeedbackMetric]] = None,
    ) -> CoachingSession:
        """Close out a session with its final transcript and scoring payload.

        ``completed_at`` and ``overall_score`` are fixed here and never
        recomputed. When the caller supplies no metrics, the final transcript
        is scored server-side.
        """

        session = self.require_session(session_id)
        self._transition(session, SessionStatus.COMPLETED)

        metrics = list(feedback_metrics or [])
        if not metrics and final_transcript.strip():
            metrics = self._scoring.analyze(final_transcript).metrics

        now = _utcnow()
        if final_transcript.strip():
            session.transcript.append(
                TranscriptChunk(
                    text=final_transcript,
                    timestamp=now,
                    is_final=True,
                    confidence=FINAL_TRANSCRIPT_CONFIDENCE,
                )
            )
        session.duration = duration
        session.feedback_metrics = metrics
        session.overall_score = calculate_overall_score(metrics)
        session.completed_at = now
        session.updated_at = now
        self._repository.save(session)
        return session

    def fail_session(self, session_id: UUID, *, reason: Optional[str] = None) -> CoachingSession:
        session = self.require_session(session_id)
        self._transition(session, SessionStatus.FAILED)
        session.failure_reason = reason
        session.updated_at = _utcnow()
        self._repository.save(session)
        logger.warning("Session %s marked failed: %s", session_id, reason)
        return session

    @staticmethod
    def _transition(session: CoachingSession, target: SessionStatus) -> None:
        if not session.status.can_transition_to(target):
            raise InvalidSessionTransition(
                f"Cannot move session from {session.status.value} to {target.value}"
            )
        session.status = target


def calculate_overall_score(metrics: Sequence[FeedbackMetric]) -> float:
    if not metrics:
        return 0
    return round(sum(metric.score for metric in metrics) / len(metrics))


session_service = SessionService(InMemorySessionRepository(), scoring_service)
