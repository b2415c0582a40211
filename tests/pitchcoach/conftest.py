from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional, Set, Tuple
from uuid import uuid4

import pytest

from src.pitchcoach.domain.models.transcription import TranscriptionResult
from src.pitchcoach.services.transcription.deepgram import LiveOptions
from src.pitchcoach.tenancy import set_current_tenant

_END = object()


class FakeSocketServer:
    """Records handlers and emits the way socketio.AsyncServer routes them."""

    def __init__(self) -> None:
        self.handlers: Dict[str, Any] = {}
        self.rooms: Dict[str, Set[str]] = defaultdict(set)
        self.received: Dict[str, List[Tuple[str, Any]]] = defaultdict(list)

    def on(self, event: str, handler: Any = None, namespace: Optional[str] = None) -> None:
        self.handlers[event] = handler

    async def emit(self, event, data=None, to=None, room=None, skip_sid=None, namespace=None) -> None:
        target = to or room
        recipients = set(self.rooms[target]) if target in self.rooms else {target}
        for sid in recipients:
            if sid != skip_sid:
                self.received[sid].append((event, data))

    async def enter_room(self, sid: str, room: str, namespace: Optional[str] = None) -> None:
        self.rooms[room].add(sid)

    async def leave_room(self, sid: str, room: str, namespace: Optional[str] = None) -> None:
        self.rooms[room].discard(sid)

    async def connect(self, sid: str, auth: Optional[dict] = None, environ: Optional[dict] = None) -> None:
        await self.handlers["connect"](sid, environ or {}, auth)

    async def trigger(self, event: str, sid: str, data: Any = None) -> None:
        await self.handlers[event](sid, data)

    async def disconnect(self, sid: str) -> None:
        await self.handlers["disconnect"](sid, "client disconnect")
        for members in self.rooms.values():
            members.discard(sid)

    def events(self, sid: str, name: str) -> List[Any]:
        return [data for event, data in self.received[sid] if event == name]


class FakeLiveConnection:
    """In-process stand-in for a provider stream.

    ``responses`` are queued one per ``send``; ``None`` means the provider
    produced nothing for that chunk.
    """

    def __init__(self, responses: Optional[List[Optional[TranscriptionResult]]] = None) -> None:
        self.sent: List[bytes] = []
        self.closed = False
        self.send_error: Optional[Exception] = None
        self._responses = list(responses or [])
        self._queue: asyncio.Queue = asyncio.Queue()

    async def send(self, chunk: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(chunk)
        if self._responses:
            response = self._responses.pop(0)
            if response is not None:
                self._queue.put_nowait(response)

    def push(self, result: TranscriptionResult) -> None:
        self._queue.put_nowait(result)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    def finish(self) -> None:
        self._queue.put_nowait(_END)

    async def results(self):
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(_END)


class FakeConnector:
    def __init__(self, *connections: FakeLiveConnection, error: Optional[Exception] = None, delay: float = 0) -> None:
        self.connections = list(connections)
        self.error = error
        self.delay = delay
        self.calls: List[LiveOptions] = []
        self.opened: List[FakeLiveConnection] = []

    async def __call__(self, options: LiveOptions) -> FakeLiveConnection:
        self.calls.append(options)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        connection = self.connections.pop(0) if self.connections else FakeLiveConnection()
        self.opened.append(connection)
        return connection


def result(transcript: str, is_final: bool = False, confidence: float = 0.9) -> TranscriptionResult:
    return TranscriptionResult(transcript=transcript, is_final=is_final, confidence=confidence)


@pytest.fixture
def fake_sio() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture
def live_connection_factory():
    return FakeLiveConnection


@pytest.fixture
def connector_factory():
    return FakeConnector


@pytest.fixture
def make_result():
    return result


@pytest.fixture
def tenant_id() -> str:
    """A fresh tenant so tests sharing the module-level services stay isolated."""

    tenant = f"tenant-{uuid4().hex[:8]}"
    set_current_tenant(tenant)
    yield tenant
    set_current_tenant(None)
