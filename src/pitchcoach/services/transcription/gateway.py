from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional

from src.pitchcoach.config import settings
from src.pitchcoach.domain.models.transcription import TranscriptionResult
from src.pitchcoach.errors import ProcessingFailure, ProviderConnectionFailed
from src.pitchcoach.services.transcription.deepgram import Connector, LiveConnection, LiveOptions

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSING = "closing"


class _LiveSession:
    """An open provider connection plus the queue its reader task fills."""

    def __init__(self, session_id: str, connection: LiveConnection) -> None:
        self.session_id = session_id
        self.connection = connection
        # ``None`` is pushed when the stream ends so waiters stop early.
        self.results: "asyncio.Queue[Optional[TranscriptionResult]]" = asyncio.Queue()
        self.reader: Optional[asyncio.Task] = None


class TranscriptionGateway:
    """Owns at most one live provider connection per session id.

    Connections are opened lazily by ``ensure_connection`` or the first
    ``submit`` and kept until ``close``. Concurrent callers for the same
    session share a single in-flight connect. Results are consumed in the
    order the provider produced them, each by exactly one ``submit``.

    All methods must be called from the event loop that owns the gateway.
    """

    def __init__(
        self,
        connector: Connector,
        *,
        result_timeout: Optional[float] = None,
        model: Optional[str] = None,
    ) -> None:
        self._connector = connector
        self._result_timeout = settings.transcript_wait_seconds if result_timeout is None else result_timeout
        self._model = model or settings.deepgram_model
        self._live: Dict[str, _LiveSession] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._states: Dict[str, ConnectionState] = {}

    def state(self, session_id: str) -> ConnectionState:
        return self._states.get(session_id, ConnectionState.IDLE)

    def get_connection_stats(self) -> Dict[str, object]:
        session_ids: List[str] = list(self._live)
        return {"activeConnections": len(session_ids), "sessionIds": session_ids}

    async def ensure_connection(
        self,
        session_id: str,
        language: str = "en",
        *,
        encoding: Optional[str] = None,
        sample_rate: Optional[int] = None,
    ) -> _LiveSession:
        live = self._live.get(session_id)
        if live is not None:
            return live

        pending = self._pending.get(session_id)
        if pending is None:
            options = LiveOptions(
                model=self._model,
                language=language,
                encoding=encoding,
                sample_rate=sample_rate,
            )
            self._states[session_id] = ConnectionState.CONNECTING
            pending = asyncio.ensure_future(self._open(session_id, options))
            self._pending[session_id] = pending

        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if pending.cancelled():
                raise ProviderConnectionFailed(
                    f"Connection for session {session_id} was closed while opening"
                ) from None
            raise

    async def submit(
        self,
        session_id: str,
        chunk: bytes,
        *,
        language: str = "en",
        encoding: Optional[str] = None,
        sample_rate: Optional[int] = None,
    ) -> TranscriptionResult:
        """Forward one chunk and wait for the next transcript.

        Resolves with ``TranscriptionResult.empty()`` when nothing arrives in
        time or the connection drops while waiting.
        """

        live = await self.ensure_connection(
            session_id, language, encoding=encoding, sample_rate=sample_rate
        )
        try:
            await live.connection.send(chunk)
        except Exception as exc:
            logger.error("Failed to forward audio for session %s: %s", session_id, exc)
            await self._discard(live)
            raise ProcessingFailure(f"Could not forward audio for session {session_id}") from exc

        try:
            result = await asyncio.wait_for(live.results.get(), timeout=self._result_timeout)
        except asyncio.TimeoutError:
            return TranscriptionResult.empty()

        if result is None:
            # Leave the marker for any other waiter on the same stream.
            live.results.put_nowait(None)
            return TranscriptionResult.empty()
        return result

    async def close(self, session_id: str) -> None:
        pending = self._pending.pop(session_id, None)
        if pending is not None:
            pending.cancel()

        live = self._live.get(session_id)
        if live is None:
            self._states.pop(session_id, None)
            return
        await self._discard(live)

    async def close_all(self) -> None:
        for session_id in list(set(self._live) | set(self._pending)):
            await self.close(session_id)

    async def _open(self, session_id: str, options: LiveOptions) -> _LiveSession:
        try:
            connection = await self._connector(options)
        except ProviderConnectionFailed:
            self._forget_pending(session_id)
            raise
        except asyncio.CancelledError:
            self._forget_pending(session_id)
            raise
        except Exception as exc:
            self._forget_pending(session_id)
            raise ProviderConnectionFailed(f"Could not connect session {session_id}: {exc}") from exc

        if self._pending.get(session_id) is asyncio.current_task():
            del self._pending[session_id]

        live = _LiveSession(session_id, connection)
        self._live[session_id] = live
        self._states[session_id] = ConnectionState.STREAMING
        live.reader = asyncio.create_task(self._read(live))
        logger.info("Live transcription connected for session %s", session_id)
        return live

    def _forget_pending(self, session_id: str) -> None:
        if self._pending.get(session_id) is asyncio.current_task():
            del self._pending[session_id]
        if session_id not in self._live and session_id not in self._pending:
            self._states.pop(session_id, None)

    async def _read(self, live: _LiveSession) -> None:
        try:
            async for result in live.connection.results():
                if result.has_text:
                    live.results.put_nowait(result)
            logger.info("Provider stream ended for session %s", live.session_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Provider stream failed for session %s", live.session_id)

        # The next chunk for this session reconnects.
        live.results.put_nowait(None)
        if self._live.get(live.session_id) is live:
            await self._discard(live)

    async def _discard(self, live: _LiveSession) -> None:
        session_id = live.session_id
        if self._live.get(session_id) is not live:
            return

        self._states[session_id] = ConnectionState.CLOSING
        del self._live[session_id]
        if live.reader is not None and live.reader is not asyncio.current_task():
            live.reader.cancel()
        live.results.put_nowait(None)

        try:
            await live.connection.close()
        except Exception as exc:
            logger.warning("Error closing provider connection for session %s: %s", session_id, exc)
        finally:
            if session_id not in self._live and session_id not in self._pending:
                self._states.pop(session_id, None)
        logger.info("Live transcription closed for session %s", session_id)
