from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.pitchcoach.domain.models.coaching_session import (
    CoachingSession,
    FeedbackMetric,
    SessionStatus,
    TranscriptChunk,
)
from src.pitchcoach.domain.models.user import User
from src.pitchcoach.errors import InvalidSessionTransition, SessionNotFound
from src.pitchcoach.security import get_api_key, get_current_user
from src.pitchcoach.services.audit.service import audit_service
from src.pitchcoach.services.sessions.service import session_service
from src.pitchcoach.services.transcription.normalizer import filter_low_quality
from src.pitchcoach.tenancy import tenant_dependency

router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
    dependencies=[Depends(get_api_key), Depends(tenant_dependency)],
)


class CreateSessionRequest(BaseModel):
    scenario: str
    language: str = "en"


class AppendTranscriptRequest(BaseModel):
    chunks: List[TranscriptChunk] = Field(min_length=1)


class CompleteSessionRequest(BaseModel):
    transcript: str = ""
    duration: float = Field(default=0, ge=0)
    # When omitted the final transcript is scored server-side.
    feedback_metrics: Optional[List[FeedbackMetric]] = None


class FailSessionRequest(BaseModel):
    reason: Optional[str] = None


def _load_for_user(session_id: UUID, user: User) -> CoachingSession:
    session = session_service.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    # Trainees only see their own sessions; managers and admins see the organization's.
    if not user.role.sees_whole_organization and session.user_id != str(user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


def _create(payload: CreateSessionRequest, user: User, *, start: bool) -> CoachingSession:
    try:
        session = session_service.create_session(
            scenario=payload.scenario,
            user_id=str(user.id),
            language=payload.language,
            start=start,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    audit_service.log_event(
        action="start_session" if start else "create_session",
        resource_type="coaching_session",
        resource_id=str(session.id),
        extra={"status": session.status.value},
    )
    return session


@router.post("/", response_model=CoachingSession, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: CreateSessionRequest,
    current_user: User = Depends(get_current_user),
) -> CoachingSession:
    """Pre-create a session in the ``ready`` state without starting capture."""

    return _create(payload, current_user, start=False)


@router.post("/start", response_model=CoachingSession, status_code=status.HTTP_201_CREATED)
async def start_session(
    payload: CreateSessionRequest,
    current_user: User = Depends(get_current_user),
) -> CoachingSession:
    """Create a session that is recording immediately (``in-progress``)."""

    return _create(payload, current_user, start=True)


@router.get("/", response_model=List[CoachingSession])
async def list_sessions(
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    user_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
) -> List[CoachingSession]:
    if not current_user.role.sees_whole_organization:
        user_id = str(current_user.id)
    return session_service.list_sessions(user_id=user_id, status=status_filter)


@router.get("/{session_id}", response_model=CoachingSession)
async def get_session(session_id: UUID, current_user: User = Depends(get_current_user)) -> CoachingSession:
    session = _load_for_user(session_id, current_user)

    audit_service.log_event(
        action="get_session",
        resource_type="coaching_session",
        resource_id=str(session_id),
    )

    return session


@router.get("/{session_id}/transcript", response_model=List[TranscriptChunk])
async def get_transcript(
    session_id: UUID,
    final_only: bool = False,
    quality_filter: bool = False,
    min_confidence: float = 0.4,
    current_user: User = Depends(get_current_user),
) -> List[TranscriptChunk]:
    session = _load_for_user(session_id, current_user)
    chunks = [chunk for chunk in session.transcript if chunk.is_final or not final_only]
    if quality_filter:
        chunks = filter_low_quality(chunks, min_confidence=min_confidence)
    return chunks


@router.post("/{session_id}/transcript", response_model=CoachingSession)
async def append_transcript(
    session_id: UUID,
    payload: AppendTranscriptRequest,
    current_user: User = Depends(get_current_user),
) -> CoachingSession:
    _load_for_user(session_id, current_user)
    try:
        session = session_service.append_transcript_chunks(session_id, payload.chunks)
    except SessionNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from exc
    except InvalidSessionTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    audit_service.log_event(
        action="append_transcript",
        resource_type="coaching_session",
        resource_id=str(session_id),
        extra={"chunk_count": len(payload.chunks)},
    )

    return session


@router.post("/{session_id}/complete", response_model=CoachingSession)
async def complete_session(
    session_id: UUID,
    payload: CompleteSessionRequest,
    current_user: User = Depends(get_current_user),
) -> CoachingSession:
    _load_for_user(session_id, current_user)
    try:
        session = session_service.complete_session(
            session_id,
            final_transcript=payload.transcript,
            duration=payload.duration,
            feedback_metrics=payload.feedback_metrics,
        )
    except SessionNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from exc
    except InvalidSessionTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    audit_service.log_event(
        action="complete_session",
        resource_type="coaching_session",
        resource_id=str(session_id),
        extra={"overall_score": session.overall_score, "metric_count": len(session.feedback_metrics)},
    )

    return session


@router.post("/{session_id}/fail", response_model=CoachingSession)
async def fail_session(
    session_id: UUID,
    payload: FailSessionRequest,
    current_user: User = Depends(get_current_user),
) -> CoachingSession:
    _load_for_user(session_id, current_user)
    try:
        session = session_service.fail_session(session_id, reason=payload.reason)
    except SessionNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from exc
    except InvalidSessionTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    audit_service.log_event(
        action="fail_session",
        resource_type="coaching_session",
        resource_id=str(session_id),
    )

    return session
