from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

import httpx

from src.pitchcoach.domain.models.coaching_session import CoachingSession, FeedbackMetric, TranscriptChunk

logger = logging.getLogger(__name__)


class SessionTranscriptBuffer:
    """Client-side buffer of final transcript chunks for one session.

    Chunks stay pending until the server acknowledges them; failed sends are
    kept for the next attempt. ``client`` is expected to carry the API base
    URL (``.../api/v1``) and any auth or tenant headers.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._session_id: Optional[str] = None
        self._pending: List[TranscriptChunk] = []

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def pending(self) -> List[TranscriptChunk]:
        return list(self._pending)

    @property
    def has_active_session(self) -> bool:
        return self._session_id is not None

    def attach(self, session_id: str) -> None:
        """Buffer for a session that was created elsewhere."""

        self.clear()
        self._session_id = session_id

    async def create_session(self, scenario: str, language: str = "en", *, start: bool = False) -> CoachingSession:
        self.clear()
        path = "/sessions/start" if start else "/sessions/"
        response = await self._client.post(path, json={"scenario": scenario, "language": language})
        response.raise_for_status()
        session = CoachingSession.model_validate(response.json())
        self._session_id = str(session.id)
        return session

    async def add_chunk(self, chunk: TranscriptChunk, send_immediately: bool = True) -> bool:
        self._pending.append(chunk)
        if not send_immediately:
            return False
        return await self.send_chunks([chunk])

    async def send_chunks(self, chunks: Sequence[TranscriptChunk]) -> bool:
        """POST ``chunks``; they leave the buffer only when the server accepts them."""

        session_id = self._require_session()
        if not chunks:
            return True

        try:
            response = await self._client.post(
                f"/sessions/{session_id}/transcript",
                json={"chunks": [chunk.model_dump(mode="json") for chunk in chunks]},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Failed to send %d transcript chunk(s); keeping them for retry: %s", len(chunks), exc)
            return False

        sent = {id(chunk) for chunk in chunks}
        self._pending = [chunk for chunk in self._pending if id(chunk) not in sent]
        return True

    async def send_all(self) -> bool:
        return await self.send_chunks(list(self._pending))

    async def complete_session(
        self,
        final_transcript: str,
        duration: float,
        feedback_metrics: Optional[Iterable[FeedbackMetric]] = None,
    ) -> CoachingSession:
        session_id = self._require_session()
        await self.send_all()

        payload = {"transcript": final_transcript, "duration": duration}
        if feedback_metrics is not None:
            payload["feedback_metrics"] = [metric.model_dump() for metric in feedback_metrics]

        response = await self._client.post(f"/sessions/{session_id}/complete", json=payload)
        response.raise_for_status()
        self.clear()
        return CoachingSession.model_validate(response.json())

    async def get_session(self, session_id: str) -> CoachingSession:
        response = await self._client.get(f"/sessions/{session_id}")
        response.raise_for_status()
        return CoachingSession.model_validate(response.json())

    def clear(self) -> None:
        self._session_id = None
        self._pending = []

    def _require_session(self) -> str:
        if self._session_id is None:
            raise RuntimeError("No active session. Create a session first.")
        return self._session_id
