"""Socket.IO event handlers for live coaching sessions.

Every session is a room named by organization and session id, so events
never cross tenants. Clients join the rooms they are viewing, stream
audio chunks into a session and receive transcript and feedback events back.
Audio is transcribed through the ``TranscriptionGateway`` owned by this
process, so all chunks of one session must reach the same process.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Tuple
from urllib.parse import quote, unquote
from uuid import UUID

import socketio
from fastapi.concurrency import run_in_threadpool

from src.pitchcoach.config import settings
from src.pitchcoach.domain.models.coaching_session import SessionStatus, TranscriptChunk
from src.pitchcoach.domain.models.transcription import TranscriptionResult
from src.pitchcoach.errors import InvalidAudioChunk, PitchCoachError, SessionNotFound
from src.pitchcoach.security import is_valid_api_key
from src.pitchcoach.services.scoring.service import ScoringService, scoring_service
from src.pitchcoach.services.sessions.service import SessionService, session_service
from src.pitchcoach.services.transcription.audio import validate_audio_chunk
from src.pitchcoach.services.transcription.gateway import TranscriptionGateway
from src.pitchcoach.tenancy import set_current_tenant

logger = logging.getLogger(__name__)

# Final results above these limits are scored for live feedback.
FEEDBACK_MIN_CONFIDENCE = 0.6
FEEDBACK_MIN_LENGTH = 3


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _session_id(data: Any) -> Optional[str]:
    """Room events accept either a bare session id or ``{"sessionId": ...}``."""

    if isinstance(data, str):
        return data or None
    if isinstance(data, dict):
        value = data.get("sessionId")
        return str(value) if value else None
    return None


def _parse_uuid(session_id: str) -> Optional[UUID]:
    try:
        return UUID(session_id)
    except (TypeError, ValueError):
        return None


def transcript_payload(session_id: str, result: TranscriptionResult) -> Dict[str, Any]:
    return {
        "sessionId": session_id,
        "transcript": result.transcript,
        "isFinal": result.is_final,
        "confidence": result.confidence,
        "timestamp": _now_iso(),
    }


def chunk_payload(chunk: TranscriptChunk) -> Dict[str, Any]:
    return {
        "text": chunk.text,
        "timestamp": chunk.timestamp.isoformat(),
        "isFinal": chunk.is_final,
        "confidence": chunk.confidence,
    }


def qualifies_for_feedback(result: TranscriptionResult) -> bool:
    return (
        result.is_final
        and result.confidence > FEEDBACK_MIN_CONFIDENCE
        and len(result.transcript.strip()) > FEEDBACK_MIN_LENGTH
    )
def session_key(tenant: str, session_id: str) -> str:
    """Room name and gateway key of a session inside one organization."""

    return f"{quote(tenant, safe='')}:{session_id}"


def split_session_key(key: str) -> Tuple[str, str]:
    tenant, _, session_id = key.partition(":")
    return unquote(tenant), session_id


class SessionEventChannel:
    def __init__(
        self,
        sio: socketio.AsyncServer,
        gateway: TranscriptionGateway,
        *,
        sessions: SessionService = session_service,
        scoring: ScoringService = scoring_service,
        namespace: Optional[str] = None,
    ) -> None:
        self._sio = sio
        self._gateway = gateway
        self._sessions = sessions
        self._scoring = scoring
        self._namespace = namespace or settings.socketio_namespace
        self._joined: Dict[str, Set[str]] = {}
        self._tenants: Dict[str, str] = {}
        # Keyed by session_key(); entries go away on stop-recording or disconnect.
        self._stream_formats: Dict[str, Tuple[int, str]] = {}
        self._verified: Set[str] = set()
        self._touched: Dict[str, Set[str]] = {}

    def register(self) -> None:
        handlers = {
            "connect": self.on_connect,
            "disconnect": self.on_disconnect,
            "join-session": self.on_join_session,
            "leave-session": self.on_leave_session,
            "audio-chunk": self.on_audio_chunk,
            "start-recording": self.on_start_recording,
            "stop-recording": self.on_stop_recording,
            "pause-recording": self.on_pause_recording,
            "resume-recording": self.on_resume_recording,
            "get-connection-status": self.on_get_connection_status,
            "get-transcript": self.on_get_transcript,
            "transcript-update": self.on_transcript_update,
            "ping": self.on_ping,
        }
        for event, handler in handlers.items():
            self._sio.on(event, handler, namespace=self._namespace)

    def joined_sessions(self, sid: str) -> Set[str]:
        return set(self._joined.get(sid, ()))

    # -- emit helpers -------------------------------------------------------

    async def _to_sender(self, sid: str, event: str, data: Dict[str, Any]) -> None:
        await self._sio.emit(event, data, to=sid, namespace=self._namespace)

    async def _to_room(self, sid: str, session_id: str, event: str, data: Dict[str, Any]) -> None:
        await self._sio.emit(event, data, room=self._key(sid, session_id), skip_sid=sid, namespace=self._namespace)

    def _enter(self, sid: str) -> None:
        set_current_tenant(self._tenants.get(sid))

    def _tenant(self, sid: str) -> str:
        return self._tenants.get(sid, "default")

    def _key(self, sid: str, session_id: str) -> str:
        return session_key(self._tenant(sid), session_id)

    # -- tenant checks -------------------------------------------------------

    def _is_visible(self, sid: str, session_id: str) -> bool:
        """Whether the caller's organization may use ``session_id``.

        Ids that are not UUIDs name live-only sessions with no stored record.
        Stored sessions must belong to the caller's tenant; the repository
        returns None for anyone else's. Store errors propagate.
        """

        key = self._key(sid, session_id)
        if key in self._verified:
            return True
        session_uuid = _parse_uuid(session_id)
        if session_uuid is not None and self._sessions.get_session(session_uuid) is None:
            return False
        self._verified.add(key)
        return True

    def _stream_key(self, sid: str, session_id: str) -> str:
        key = self._key(sid, session_id)
        self._touched.setdefault(sid, set()).add(key)
        return key

    def _forget_stream(self, key: str) -> None:
        self._stream_formats.pop(key, None)
        self._verified.discard(key)

    def _connection_stats(self, sid: str) -> Dict[str, Any]:
        """Gateway stats limited to the caller's organization, with plain session ids."""

        tenant = self._tenant(sid)
        session_ids = []
        for key in self._gateway.get_connection_stats()["sessionIds"]:
            owner, session_id = split_session_key(key)
            if owner == tenant:
                session_ids.append(session_id)
        return {"activeConnections": len(session_ids), "sessionIds": session_ids}

    # -- connection lifecycle ----------------------------------------------

    async def on_connect(self, sid: str, environ: Dict[str, Any], auth: Optional[Dict[str, Any]] = None) -> None:
        auth = auth if isinstance(auth, dict) else {}
        api_key = auth.get("apiKey") or environ.get("HTTP_X_API_KEY")
        if not is_valid_api_key(api_key):
            logger.warning("Rejected socket connection %s: invalid or missing API key", sid)
            raise socketio.exceptions.ConnectionRefusedError("Invalid or missing API key")

        tenant = auth.get("organizationId") or environ.get("HTTP_X_TENANT_ID")
        self._tenants[sid] = set_current_tenant(tenant)
        self._joined[sid] = set()
        logger.info("Socket %s connected (tenant=%s)", sid, self._tenants[sid])

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        logger.info("Socket %s disconnected: %s", sid, reason)
        for session_id in self._joined.pop(sid, set()):
            key = self._key(sid, session_id)
            await self._gateway.close(key)
            self._forget_stream(key)
            await self._to_room(
                sid,
                session_id,
                "participant-left",
                {
                    "sessionId": session_id,
                    "participantId": sid,
                    "message": "Participant left the session",
                },
            )
        for key in self._touched.pop(sid, set()):
            self._forget_stream(key)
        self._tenants.pop(sid, None)

    # -- rooms ---------------------------------------------------------------

    async def on_join_session(self, sid: str, data: Any = None) -> None:
        self._enter(sid)
        session_id = _session_id(data)
        if session_id is None:
            return

        try:
            visible = self._is_visible(sid, session_id)
        except Exception:
            logger.exception("Could not look up session %s for socket %s", session_id, sid)
            await self._to_sender(sid, "session-error", {"sessionId": session_id, "error": "Failed to join session"})
            return
        if not visible:
            logger.warning("Socket %s refused session %s outside its organization", sid, session_id)
            await self._to_sender(sid, "session-error", {"sessionId": session_id, "error": "Session not found"})
            return

        await self._sio.enter_room(sid, self._key(sid, session_id), namespace=self._namespace)
        self._joined.setdefault(sid, set()).add(session_id)
        logger.info("Socket %s joined session %s", sid, session_id)

        stats = self._connection_stats(sid)
        await self._to_sender(
            sid,
            "connection-status",
            {
                "sessionId": session_id,
                "isConnected": session_id in stats["sessionIds"],
                "stats": stats,
            },
        )

    async def on_leave_session(self, sid: str, data: Any = None) -> None:
        session_id = _session_id(data)
        if session_id is None:
            return
        await self._sio.leave_room(sid, self._key(sid, session_id), namespace=self._namespace)
        self._joined.get(sid, set()).discard(session_id)
        logger.info("Socket %s left session %s", sid, session_id)

    # -- audio ---------------------------------------------------------------

    async def on_audio_chunk(self, sid: str, data: Any = None) -> None:
        self._enter(sid)
        payload = data if isinstance(data, dict) else {}
        session_id = _session_id(payload)

        try:
            if session_id is None:
                raise InvalidAudioChunk("Audio chunk has no session id")
            chunk = validate_audio_chunk(payload.get("chunk"))
        except InvalidAudioChunk as exc:
            logger.warning("Rejected audio chunk from %s: %s", sid, exc)
            await self._to_sender(
                sid,
                "audio-error",
                {
                    "sessionId": session_id,
                    "error": "Invalid audio chunk",
                    "message": "Audio data is invalid or corrupted",
                },
            )
            return

        try:
            if not self._is_visible(sid, session_id):
                raise SessionNotFound(session_id)

            key = self._stream_key(sid, session_id)
            sample_rate = payload.get("sampleRate")
            encoding = payload.get("encoding")
            self._remember_stream_format(key, session_id, sample_rate, encoding)

            result = await self._gateway.submit(
                key,
                chunk,
                language=payload.get("language") or "en",
                encoding=encoding,
                sample_rate=sample_rate,
            )

            if result.has_text:
                update = transcript_payload(session_id, result)
                await self._to_room(sid, session_id, "transcript-update", update)
                await self._to_sender(sid, "transcript-update", update)

            if qualifies_for_feedback(result):
                await self._send_feedback(sid, session_id, result.transcript)

            await self._to_sender(
                sid,
                "audio-processed",
                {
                    "sessionId": session_id,
                    "chunkSize": len(chunk),
                    "processedAt": _now_iso(),
                    "success": True,
                },
            )
        except SessionNotFound:
            logger.warning("Socket %s sent audio for session %s outside its organization", sid, session_id)
            await self._to_sender(
                sid,
                "audio-error",
                {
                    "sessionId": session_id,
                    "error": "Session not found",
                    "message": "The session does not exist in this organization",
                },
            )
        except Exception:
            logger.exception("Error processing audio chunk for session %s", session_id)
            await self._to_sender(
                sid,
                "audio-error",
                {
                    "sessionId": session_id,
                    "error": "Failed to process audio",
                    "message": "The audio chunk could not be processed",
                },
            )

    async def _send_feedback(self, sid: str, session_id: str, text: str) -> None:
        try:
            feedback = await run_in_threadpool(self._scoring.analyze, text)
        except Exception:
            logger.exception("Feedback analysis failed for session %s", session_id)
            return
        await self._to_sender(
            sid,
            "feedback-update",
            {
                "sessionId": session_id,
                "feedback": feedback.to_event_payload(),
                "timestamp": _now_iso(),
            },
        )

    def _remember_stream_format(self, key: str, session_id: str, sample_rate: Any, encoding: Any) -> None:
        if not isinstance(sample_rate, int) or not isinstance(encoding, str):
            return
        stream_format = (sample_rate, encoding)
        if self._stream_formats.get(key) == stream_format:
            return
        self._stream_formats[key] = stream_format

        session_uuid = _parse_uuid(session_id)
        if session_uuid is None:
            return
        try:
            self._sessions.record_stream_format(session_uuid, sample_rate=sample_rate, audio_format=encoding)
        except PitchCoachError as exc:
            # Live transcription carries on without a stored session.
            logger.warning("Could not record stream format for session %s: %s", session_id, exc)

    # -- recording control ---------------------------------------------------

    async def on_start_recording(self, sid: str, data: Any = None) -> None:
        self._enter(sid)
        session_id = _session_id(data)
        language = data.get("language") if isinstance(data, dict) else None
        if session_id is None:
            await self._to_sender(sid, "recording-error", {"sessionId": None, "error": "Missing session id"})
            return

        key = self._key(sid, session_id)
        try:
            if not self._is_visible(sid, session_id):
                await self._to_sender(sid, "recording-error", {"sessionId": session_id, "error": "Session not found"})
                return
            self._stream_key(sid, session_id)
            await self._gateway.ensure_connection(key, language or "en")
            self._mark_in_progress(session_id)
        except Exception:
            logger.exception("Could not start recording for session %s", session_id)
            await self._gateway.close(key)
            self._forget_stream(key)
            await self._to_sender(
                sid,
                "recording-error",
                {"sessionId": session_id, "error": "Failed to initialize speech recognition"},
            )
            return

        await self._to_sender(
            sid,
            "recording-started",
            {"sessionId": session_id, "message": "Recording started successfully"},
        )
        await self._to_room(
            sid,
            session_id,
            "recording-status",
            {"sessionId": session_id, "recording": True, "message": "Recording started"},
        )

    def _mark_in_progress(self, session_id: str) -> None:
        session_uuid = _parse_uuid(session_id)
        if session_uuid is None:
            return
        session = self._sessions.get_session(session_uuid)
        if session is not None and session.status == SessionStatus.READY:
            self._sessions.start_recording(session_uuid)
            logger.info("Session %s is now in progress", session_id)

    async def on_stop_recording(self, sid: str, data: Any = None) -> None:
        self._enter(sid)
        session_id = _session_id(data)
        if session_id is None:
            return
        key = self._key(sid, session_id)
        await self._gateway.close(key)
        self._forget_stream(key)
        await self._to_sender(
            sid,
            "recording-stopped",
            {"sessionId": session_id, "message": "Recording stopped successfully"},
        )
        await self._to_room(
            sid,
            session_id,
            "recording-status",
            {"sessionId": session_id, "recording": False, "message": "Recording stopped"},
        )

    async def on_pause_recording(self, sid: str, data: Any = None) -> None:
        session_id = _session_id(data)
        if session_id is None:
            return
        await self._to_sender(sid, "recording-paused", {"sessionId": session_id, "message": "Recording paused"})
        await self._to_room(
            sid,
            session_id,
            "recording-status",
            {"sessionId": session_id, "recording": False, "paused": True, "message": "Recording paused"},
        )

    async def on_resume_recording(self, sid: str, data: Any = None) -> None:
        session_id = _session_id(data)
        if session_id is None:
            return
        await self._to_sender(sid, "recording-resumed", {"sessionId": session_id, "message": "Recording resumed"})
        await self._to_room(
            sid,
            session_id,
            "recording-status",
            {"sessionId": session_id, "recording": True, "paused": False, "message": "Recording resumed"},
        )

    # -- queries and relay ---------------------------------------------------

    async def on_get_connection_status(self, sid: str, data: Any = None) -> None:
        session_id = _session_id(data)
        stats = self._connection_stats(sid)
        await self._to_sender(
            sid,
            "connection-status",
            {
                "sessionId": session_id,
                "isConnected": session_id in stats["sessionIds"],
                "activeConnections": stats["activeConnections"],
                "timestamp": _now_iso(),
            },
        )

    async def on_get_transcript(self, sid: str, data: Any = None) -> None:
        self._enter(sid)
        session_id = _session_id(data)
        session_uuid = _parse_uuid(session_id) if session_id else None
        try:
            session = self._sessions.get_session(session_uuid) if session_uuid else None
        except Exception:
            logger.exception("Could not load transcript for session %s", session_id)
            await self._to_sender(
                sid, "transcript-error", {"sessionId": session_id, "error": "Failed to fetch transcript"}
            )
            return
        if session is None:
            await self._to_sender(sid, "transcript-error", {"sessionId": session_id, "error": "Session not found"})
            return

        await self._to_sender(
            sid,
            "transcript-history",
            {
                "sessionId": session_id,
                "transcript": [chunk_payload(chunk) for chunk in session.transcript],
                "scenario": session.scenario,
                "startedAt": session.started_at.isoformat() if session.started_at else None,
            },
        )

    async def on_transcript_update(self, sid: str, data: Any = None) -> None:
        session_id = _session_id(data)
        if session_id is None:
            return
        await self._to_room(sid, session_id, "transcript-update", data)

    async def on_ping(self, sid: str, data: Any = None) -> None:
        await self._to_sender(sid, "pong", {"timestamp": _now_iso()})
