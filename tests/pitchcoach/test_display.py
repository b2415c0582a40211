from datetime import datetime, timedelta, timezone

from src.pitchcoach.client.display import TranscriptDisplay
from src.pitchcoach.domain.models.coaching_session import TranscriptChunk


def test_display_filters_and_exports():
    start = datetime(2024, 5, 1, 9, 30, 0, tzinfo=timezone.utc)
    display = TranscriptDisplay()

    assert display.add(TranscriptChunk(text="Thanks for joining", is_final=False, confidence=0.5, timestamp=start))
    assert display.add(TranscriptChunk(text="Thanks for joining today.", is_final=True, confidence=0.92, timestamp=start))
    assert not display.add(
        TranscriptChunk(
            text="thanks for joining today",
            is_final=True,
            confidence=0.9,
            timestamp=start + timedelta(milliseconds=800),
        )
    )
    assert display.add(
        TranscriptChunk(text="Let's begin.", is_final=True, confidence=0.88, timestamp=start + timedelta(seconds=3))
    )

    assert display.final_text() == "Thanks for joining today. Let's begin."
    assert display.export_text().split("\n\n") == [
        "[09:30:00] Thanks for joining (50%, interim)",
        "[09:30:00] Thanks for joining today. (92%, final)",
        "[09:30:03] Let's begin. (88%, final)",
    ]

    display.clear()
    assert display.items == []
