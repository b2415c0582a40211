"""Microphone capture streamed straight to the speech-to-text provider.

``AudioCaptureClient`` records from an ``AudioSource`` in fixed-size frames,
sends them as 16-bit PCM over one live provider connection and passes every
result through a ``TranscriptNormalizer`` before notifying listeners. Capture
never waits for the provider: frames are queued and sent by a separate task.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol

import numpy as np

from src.pitchcoach.domain.models.coaching_session import TranscriptChunk
from src.pitchcoach.domain.models.transcription import TranscriptionResult
from src.pitchcoach.errors import AlreadyActive, PermissionDenied, UnsupportedDevice
from src.pitchcoach.services.transcription.audio import calculate_rms, convert_sample_rate, encode_pcm
from src.pitchcoach.services.transcription.deepgram import Connector, DeepgramConnector, LiveConnection, LiveOptions
from src.pitchcoach.services.transcription.normalizer import TranscriptNormalizer

logger = logging.getLogger(__name__)

TranscriptListener = Callable[[str, bool, float], Any]
FrameCallback = Callable[[np.ndarray], None]


@dataclass(frozen=True)
class CaptureConstraints:
    sample_rate: int = 16000
    channels: int = 1
    echo_cancellation: bool = True
    noise_suppression: bool = True
    frame_ms: int = 250


class AudioSource(Protocol):
    """A microphone. ``on_frame`` may be called from any thread."""

    @property
    def sample_rate(self) -> int: ...

    def start(self, constraints: CaptureConstraints, on_frame: FrameCallback) -> None: ...

    def stop(self) -> None: ...


class SoundDeviceSource:
    """PortAudio input through ``sounddevice``.

    PortAudio has no echo cancellation or noise suppression; those
    constraints are accepted but left to the operating system.
    """

    def __init__(self, device: Optional[Any] = None) -> None:
        self._device = device
        self._stream: Optional[Any] = None
        self._sample_rate = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    def start(self, constraints: CaptureConstraints, on_frame: FrameCallback) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:
            # OSError: the PortAudio shared library is missing.
            raise UnsupportedDevice("No audio capture backend is available") from exc

        try:
            info = sd.query_devices(self._device, kind="input")
        except (ValueError, sd.PortAudioError) as exc:
            raise UnsupportedDevice("No audio input device found") from exc

        sample_rate = constraints.sample_rate
        try:
            sd.check_input_settings(
                device=self._device,
                channels=constraints.channels,
                samplerate=sample_rate,
                dtype="float32",
            )
        except (ValueError, sd.PortAudioError):
            # Device cannot record at the requested rate; frames are resampled later.
            sample_rate = int(info["default_samplerate"])

        def callback(indata, frames, time_info, status) -> None:
            if status:
                logger.debug("Audio input status: %s", status)
            on_frame(indata[:, 0].copy())

        try:
            stream = sd.InputStream(
                device=self._device,
                channels=constraints.channels,
                samplerate=sample_rate,
                blocksize=sample_rate * constraints.frame_ms // 1000,
                dtype="float32",
                callback=callback,
            )
            stream.start()
        except sd.PortAudioError as exc:
            raise PermissionDenied(f"Microphone access was refused: {exc}") from exc

        self._stream = stream
        self._sample_rate = sample_rate
        logger.info("Microphone opened (%s Hz, device=%s)", sample_rate, info.get("name"))

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()


def capture_options(language: str, constraints: CaptureConstraints) -> LiveOptions:
    """Recognition parameters for a client-held connection."""

    return LiveOptions(
        language=language,
        endpointing=500,
        encoding="linear16",
        sample_rate=constraints.sample_rate,
        channels=constraints.channels,
        extra={
            "utterance_end_ms": 2500,
            "vad_threshold": 0.5,
            "no_delay": False,
            "filler_words": False,
        },
    )


class AudioCaptureClient:
    def __init__(
        self,
        *,
        source: Optional[AudioSource] = None,
        connector_factory: Callable[[str], Connector] = DeepgramConnector,
        constraints: Optional[CaptureConstraints] = None,
        buffer: Optional[Any] = None,
    ) -> None:
        self._source = source or SoundDeviceSource()
        self._connector_factory = connector_factory
        self.constraints = constraints or CaptureConstraints()
        # Optional SessionTranscriptBuffer; accepted finals are handed to it.
        self.buffer = buffer
        self.normalizer = TranscriptNormalizer()
        self.level = 0.0

        self._listeners: List[TranscriptListener] = []
        self._active = False
        self._session_id: Optional[str] = None
        self._connection: Optional[LiveConnection] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._frames: Optional["asyncio.Queue[np.ndarray]"] = None
        self._sender: Optional[asyncio.Task] = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def is_capturing(self) -> bool:
        return self._active

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def on_transcript(self, callback: TranscriptListener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: TranscriptListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def start(self, session_id: str, credential: str, language: str = "en") -> None:
        """Open the microphone and a live provider connection.

        Raises ``AlreadyActive``, ``UnsupportedDevice``, ``PermissionDenied``
        or ``ProviderConnectionFailed``; on any failure the microphone is
        released again.
        """

        if self._active:
            raise AlreadyActive("Transcription already in progress")
        self._active = True

        self._loop = asyncio.get_running_loop()
        self._frames = asyncio.Queue()
        self.normalizer.reset()

        try:
            self._source.start(self.constraints, self._on_frame)
        except BaseException:
            self._reset_state()
            raise

        try:
            connector = self._connector_factory(credential)
            self._connection = await connector(capture_options(language, self.constraints))
        except BaseException:
            self._source.stop()
            self._reset_state()
            raise

        self._session_id = session_id
        self._sender = asyncio.create_task(self._send_frames())
        self._reader = asyncio.create_task(self._read_results())
        logger.info("Capture started for session %s", session_id)

    async def stop(self) -> None:
        """Release the microphone and the provider connection. Safe to call repeatedly."""

        if not self._active:
            return
        self._active = False
        self._source.stop()

        current = asyncio.current_task()
        tasks = [task for task in (self._sender, self._reader) if task is not None and task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()

        session_id = self._session_id
        self._reset_state()
        logger.info("Capture stopped for session %s", session_id)

    def _reset_state(self) -> None:
        self._active = False
        self._session_id = None
        self._sender = None
        self._reader = None
        self._frames = None
        self.normalizer.reset()
        self.level = 0.0

    def _on_frame(self, samples: np.ndarray) -> None:
        loop, frames = self._loop, self._frames
        if loop is None or frames is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(frames.put_nowait, samples)

    async def _send_frames(self) -> None:
        frames = self._frames
        connection = self._connection
        target_rate = self.constraints.sample_rate
        try:
            while True:
                samples = await frames.get()
                self.level = calculate_rms(samples)
                source_rate = self._source.sample_rate or target_rate
                if source_rate != target_rate:
                    samples = convert_sample_rate(samples, source_rate, target_rate)
                await connection.send(encode_pcm(samples))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sending audio to the provider failed; stopping capture")
            await self.stop()

    async def _read_results(self) -> None:
        try:
            async for result in self._connection.results():
                await self._handle_result(result)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Provider stream failed; stopping capture")
            await self.stop()
            return
        logger.info("Provider closed the stream for session %s", self._session_id)
        await self.stop()

    async def _handle_result(self, result: TranscriptionResult) -> Optional[TranscriptChunk]:
        chunk = self.normalizer.process(
            result.transcript,
            is_final=result.is_final,
            confidence=result.confidence,
        )
        if chunk is None:
            return None

        if chunk.is_final and self.buffer is not None and self.buffer.has_active_session:
            await self.buffer.add_chunk(chunk)

        for listener in list(self._listeners):
            outcome = listener(chunk.text, chunk.is_final, chunk.confidence)
            if inspect.isawaitable(outcome):
                await outcome
        return chunk
