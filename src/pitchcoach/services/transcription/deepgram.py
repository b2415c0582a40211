from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Protocol, Union

import aiohttp
from pydantic import ValidationError

from src.pitchcoach.config import settings
from src.pitchcoach.domain.models.transcription import LiveResultsMessage, TranscriptionResult
from src.pitchcoach.errors import ProviderConnectionFailed

logger = logging.getLogger(__name__)

# Client-side encodings mapped onto the provider's names.
_ENCODINGS = {"pcm": "linear16", "linear16": "linear16", "opus": "opus", "mulaw": "mulaw", "flac": "flac"}


def _flag(value: Union[bool, int, str]) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class LiveOptions:
    """Query parameters for a live streaming connection."""

    model: str = field(default_factory=lambda: settings.deepgram_model)
    language: str = "en"
    interim_results: bool = True
    punctuate: bool = True
    # True for the provider default, or a silence length in milliseconds.
    endpointing: Union[bool, int] = True
    vad_events: bool = True
    smart_format: bool = True
    # Left unset for containerized audio (webm/ogg), which the provider sniffs.
    encoding: Optional[str] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    extra: Dict[str, Union[bool, int, str]] = field(default_factory=dict)

    def to_query(self) -> Dict[str, str]:
        query = {
            "model": self.model,
            "language": self.language,
            "interim_results": _flag(self.interim_results),
            "punctuate": _flag(self.punctuate),
            "endpointing": _flag(self.endpointing),
            "vad_events": _flag(self.vad_events),
            "smart_format": _flag(self.smart_format),
        }
        if self.encoding:
            query["encoding"] = _ENCODINGS.get(self.encoding.lower(), self.encoding)
        if self.sample_rate:
            query["sample_rate"] = str(self.sample_rate)
        if self.channels:
            query["channels"] = str(self.channels)
        for key, value in self.extra.items():
            query[key] = _flag(value)
        return query


class LiveConnection(Protocol):
    """A single streaming recognition connection."""

    async def send(self, chunk: bytes) -> None: ...

    def results(self) -> AsyncIterator[TranscriptionResult]: ...

    async def close(self) -> None: ...


Connector = Callable[[LiveOptions], Awaitable[LiveConnection]]


def parse_live_message(raw: Union[str, bytes]) -> Optional[TranscriptionResult]:
    """Decode one provider message; None for non-result or malformed payloads."""

    try:
        message = LiveResultsMessage.model_validate_json(raw)
    except ValidationError:
        logger.warning("Discarding malformed provider message")
        return None
    return message.to_result()


class DeepgramLiveConnection:
    def __init__(self, http: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._http = http
        self._ws = ws

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send(self, chunk: bytes) -> None:
        await self._ws.send_bytes(chunk)

    async def results(self) -> AsyncIterator[TranscriptionResult]:
        async for message in self._ws:
            if message.type == aiohttp.WSMsgType.TEXT:
                result = parse_live_message(message.data)
                if result is not None:
                    yield result
            elif message.type == aiohttp.WSMsgType.ERROR:
                raise self._ws.exception() or ConnectionError("provider stream failed")

    async def close(self) -> None:
        try:
            if not self._ws.closed:
                # Ask the provider to flush pending results before the socket goes away.
                await self._ws.send_str(json.dumps({"type": "CloseStream"}))
                await self._ws.close()
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
            logger.debug("Ignoring error while closing provider stream: %s", exc)
        finally:
            await self._http.close()


class DeepgramConnector:
    """Opens authenticated live connections to the provider."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        url: Optional[str] = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._url = url or settings.deepgram_live_url
        self._connect_timeout = connect_timeout

    async def __call__(self, options: LiveOptions) -> DeepgramLiveConnection:
        if not self._api_key:
            raise ProviderConnectionFailed("DEEPGRAM_API_KEY is not configured")

        http = aiohttp.ClientSession()
        try:
            ws = await http.ws_connect(
                self._url,
                params=options.to_query(),
                headers={"Authorization": f"Token {self._api_key}"},
                timeout=aiohttp.ClientWSTimeout(ws_close=self._connect_timeout),
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            await http.close()
            raise ProviderConnectionFailed(f"Could not open live transcription stream: {exc}") from exc

        logger.info("Provider stream opened (model=%s, language=%s)", options.model, options.language)
        return DeepgramLiveConnection(http, ws)
