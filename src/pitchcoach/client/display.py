from __future__ import annotations

from typing import List

from src.pitchcoach.domain.models.coaching_session import TranscriptChunk
from src.pitchcoach.services.transcription.normalizer import should_display


class TranscriptDisplay:
    """Ordered list of transcript items shown to the speaker.

    Items pass through ``should_display`` before being appended; interims
    stay in the list next to the finals that supersede them.
    """

    def __init__(self) -> None:
        self._items: List[TranscriptChunk] = []

    @property
    def items(self) -> List[TranscriptChunk]:
        return list(self._items)

    def add(self, chunk: TranscriptChunk) -> bool:
        if not should_display(self._items, chunk):
            return False
        self._items.append(chunk)
        return True

    def final_text(self) -> str:
        return " ".join(item.text for item in self._items if item.is_final)

    def export_text(self) -> str:
        lines = []
        for item in self._items:
            kind = "final" if item.is_final else "interim"
            lines.append(
                f"[{item.timestamp.strftime('%H:%M:%S')}] {item.text} ({round(item.confidence * 100)}%, {kind})"
            )
        return "\n\n".join(lines)

    def clear(self) -> None:
        self._items.clear()
