from __future__ import annotations

import logging
import struct
from typing import Optional

import numpy as np

from src.pitchcoach.config import settings
from src.pitchcoach.errors import InvalidAudioChunk

logger = logging.getLogger(__name__)

WAV_HEADER_BYTES = 44


def validate_audio_chunk(chunk: Optional[bytes], *, max_bytes: Optional[int] = None) -> bytes:
    """Return the chunk as bytes or raise InvalidAudioChunk.

    Oversized chunks are only logged: clients on slow links batch frames and
    the provider accepts them.
    """

    if chunk is None:
        raise InvalidAudioChunk("Audio chunk is missing")
    if not isinstance(chunk, (bytes, bytearray, memoryview)):
        raise InvalidAudioChunk(f"Audio chunk must be binary, got {type(chunk).__name__}")
    data = bytes(chunk)
    if not data:
        raise InvalidAudioChunk("Audio chunk is empty")

    limit = settings.max_audio_chunk_bytes if max_bytes is None else max_bytes
    if len(data) > limit:
        logger.warning("Audio chunk size seems too large: %d bytes", len(data))
    return data


def pcm_to_wav(pcm: bytes, sample_rate: int = 16000) -> bytes:
    """Wrap raw 16-bit mono little-endian PCM in a minimal 44-byte WAV header."""

    channels = 1
    bits_per_sample = 16
    block_align = channels * bits_per_sample // 8
    # An odd trailing byte cannot form a sample.
    pcm = pcm[: len(pcm) - (len(pcm) % block_align)]
    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + len(pcm),
        b"WAVE",
        b"fmt ",
        16,
        1,  # PCM
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        bits_per_sample,
        b"data",
        len(pcm),
    )
    return header + pcm


def encode_pcm(samples: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to 16-bit little-endian PCM bytes."""

    clipped = np.clip(np.asarray(samples, dtype=np.float32).reshape(-1), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return scaled.astype("<i2").tobytes()


def convert_sample_rate(samples: np.ndarray, original_rate: int, target_rate: int) -> np.ndarray:
    """Nearest-sample resampling; adequate for speech sent to a recognizer."""

    samples = np.asarray(samples, dtype=np.float32).reshape(-1)
    if original_rate == target_rate or samples.size == 0:
        return samples
    ratio = original_rate / target_rate
    new_length = int(round(samples.size / ratio))
    indices = np.minimum(np.round(np.arange(new_length) * ratio).astype(int), samples.size - 1)
    return samples[indices]


def calculate_rms(samples: np.ndarray) -> float:
    samples = np.asarray(samples, dtype=np.float32)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples))))
