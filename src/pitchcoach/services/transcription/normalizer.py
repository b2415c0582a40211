"""Cleaning and de-duplication of streaming transcription fragments.

Streaming providers re-send the same words many times: interim hypotheses
are revised every few hundred milliseconds and finals occasionally repeat.
``TranscriptNormalizer`` turns that stream into a clean, monotonically
advancing transcript. ``should_display`` is a second, coarser gate applied
where transcripts are shown to a user; the two layers use slightly different
thresholds and are intentionally kept separate.
"""

from __future__ import annotations

import re
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from src.pitchcoach.domain.models.coaching_session import TranscriptChunk

FINAL_MIN_CONFIDENCE = 0.5
FINAL_MIN_LENGTH = 2
INTERIM_MIN_CONFIDENCE = 0.3
INTERIM_MIN_LENGTH = 3

DUPLICATE_FINAL_SIMILARITY = 0.8
DUPLICATE_FINAL_WINDOW_MS = 2000
INTERIM_MIN_INTERVAL_MS = 300
INTERIM_CHANGE_SIMILARITY = 0.7

DISPLAY_INTERIM_OVERLAP = 0.8
DISPLAY_FINAL_OVERLAP = 0.7
DISPLAY_FINAL_WINDOW_MS = 2000

_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_COMMA_RE = re.compile(r",\s*$")
_TRAILING_PARTIAL_WORD_RE = re.compile(r"\w+\.\.\.$")
_TERMINAL_PUNCTUATION = (".", "!", "?")

_NONSENSE_PATTERNS = [
    re.compile(rf"^{lead} [a-z]+$")
    for lead in (
        "in the",
        "and the",
        "of the",
        "to the",
        "for the",
        "what do",
        "how do",
        "where do",
        "when do",
        "why do",
    )
]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def is_valid_fragment(text: str, confidence: float, is_final: bool) -> bool:
    """Validity gate; finals and interims have different minimums."""

    trimmed = text.strip()
    if not trimmed:
        return False
    if is_final:
        return confidence >= FINAL_MIN_CONFIDENCE and len(trimmed) >= FINAL_MIN_LENGTH
    return confidence >= INTERIM_MIN_CONFIDENCE and len(trimmed) >= INTERIM_MIN_LENGTH


def clean_transcript(text: str) -> str:
    cleaned = _WHITESPACE_RE.sub(" ", text).strip()
    cleaned = _TRAILING_COMMA_RE.sub("", cleaned)
    cleaned = _TRAILING_PARTIAL_WORD_RE.sub("", cleaned).rstrip()
    if not cleaned:
        return ""
    cleaned = cleaned[0].upper() + cleaned[1:]
    if not cleaned.endswith(_TERMINAL_PUNCTUATION):
        cleaned += "."
    return cleaned


def similarity(first: str, second: str) -> float:
    """Order-independent token overlap in [0, 1].

    Shared lowercase tokens (counted as a multiset, so the measure is
    symmetric) divided by the larger token count of the two texts.
    """

    tokens_a = first.lower().split()
    tokens_b = second.lower().split()
    if not tokens_a or not tokens_b:
        return 0.0
    shared = sum((Counter(tokens_a) & Counter(tokens_b)).values())
    return shared / max(len(tokens_a), len(tokens_b))


class TranscriptNormalizer:
    """Stateful filter for one transcription stream.

    ``process`` returns the cleaned chunk to emit, or ``None`` when the
    fragment is rejected (invalid, duplicate or too soon). Timing windows are
    measured per instance, so each session needs its own normalizer.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.last_final_text = ""
        self.last_final_at: Optional[float] = None
        self.interim_buffer = ""
        self.last_emitted_at: Optional[float] = None

    def process(
        self,
        text: str,
        *,
        is_final: bool,
        confidence: float,
        now_ms: Optional[float] = None,
    ) -> Optional[TranscriptChunk]:
        if not is_valid_fragment(text, confidence, is_final):
            return None

        cleaned = clean_transcript(text)
        if not cleaned:
            return None

        now = _monotonic_ms() if now_ms is None else now_ms
        if is_final:
            accepted = self._accept_final(cleaned, now)
        else:
            accepted = self._accept_interim(cleaned, now)
        if not accepted:
            return None

        return TranscriptChunk(
            text=cleaned,
            timestamp=datetime.now(timezone.utc),
            is_final=is_final,
            confidence=min(max(confidence, 0.0), 1.0),
        )

    def _accept_final(self, cleaned: str, now: float) -> bool:
        if (
            self.last_final_at is not None
            and now - self.last_final_at < DUPLICATE_FINAL_WINDOW_MS
            and similarity(cleaned, self.last_final_text) > DUPLICATE_FINAL_SIMILARITY
        ):
            return False
        self.last_final_text = cleaned
        self.last_final_at = now
        self.interim_buffer = ""
        self.last_emitted_at = now
        return True

    def _accept_interim(self, cleaned: str, now: float) -> bool:
        if self.last_emitted_at is not None and now - self.last_emitted_at < INTERIM_MIN_INTERVAL_MS:
            return False
        if similarity(cleaned, self.interim_buffer) >= INTERIM_CHANGE_SIMILARITY:
            return False
        self.interim_buffer = cleaned
        self.last_emitted_at = now
        return True


def should_display(displayed: Sequence[TranscriptChunk], candidate: TranscriptChunk) -> bool:
    """Presentation-boundary duplicate gate, applied on top of the normalizer."""

    if not displayed:
        return True
    last = displayed[-1]
    if not last.is_final:
        return True

    overlap = similarity(candidate.text, last.text)
    if not candidate.is_final:
        return overlap <= DISPLAY_INTERIM_OVERLAP

    elapsed_ms = (candidate.timestamp - last.timestamp).total_seconds() * 1000
    return not (overlap > DISPLAY_FINAL_OVERLAP and elapsed_ms < DISPLAY_FINAL_WINDOW_MS)


def is_nonsense_phrase(text: str) -> bool:
    """Detect short connective fragments such as "in the middle" that carry no content."""

    lowered = text.strip().lower().rstrip(".!?")
    return any(pattern.match(lowered) for pattern in _NONSENSE_PATTERNS)


def filter_low_quality(
    chunks: Iterable[TranscriptChunk],
    *,
    min_confidence: float = 0.4,
    min_length: int = 3,
) -> List[TranscriptChunk]:
    return [
        chunk
        for chunk in chunks
        if chunk.confidence >= min_confidence
        and len(chunk.text.strip()) >= min_length
        and not is_nonsense_phrase(chunk.text)
    ]


def format_transcript_text(text: str) -> str:
    formatted = _WHITESPACE_RE.sub(" ", text).strip()
    if formatted:
        formatted = formatted[0].upper() + formatted[1:]
    if not formatted.endswith(_TERMINAL_PUNCTUATION):
        formatted += "."
    return formatted
