from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class TranscriptionResult(BaseModel):
    """A single result from the speech-to-text provider."""

    transcript: str = ""
    is_final: bool = False
    confidence: float = 0.0

    @classmethod
    def empty(cls) -> "TranscriptionResult":
        return cls(transcript="", is_final=False, confidence=0.0)

    @property
    def has_text(self) -> bool:
        return bool(self.transcript.strip())


class Alternative(BaseModel):
    transcript: str = ""
    confidence: float = 0.0


class Channel(BaseModel):
    alternatives: List[Alternative] = Field(default_factory=list)


class LiveResultsMessage(BaseModel):
    """Envelope pushed by the provider over a live streaming connection.

    Only messages of type ``"Results"`` carry transcripts; metadata,
    speech-started and utterance-end messages share the envelope but are
    ignored.
    """

    type: str
    channel: Optional[Channel] = None
    is_final: bool = False

    def to_result(self) -> Optional[TranscriptionResult]:
        if self.type != "Results":
            return None
        alternative = _first_alternative(self.channel)
        return TranscriptionResult(
            transcript=alternative.transcript,
            is_final=self.is_final,
            confidence=alternative.confidence,
        )


class RestResults(BaseModel):
    channels: List[Channel] = Field(default_factory=list)


class RestResponse(BaseModel):
    """Body returned by the provider's pre-recorded (REST) endpoint."""

    results: Optional[RestResults] = None

    def to_result(self) -> TranscriptionResult:
        channel = self.results.channels[0] if self.results and self.results.channels else None
        alternative = _first_alternative(channel)
        # Pre-recorded responses are always final.
        return TranscriptionResult(
            transcript=alternative.transcript,
            is_final=True,
            confidence=alternative.confidence,
        )


def _first_alternative(channel: Optional[Channel]) -> Alternative:
    if channel is None or not channel.alternatives:
        return Alternative()
    return channel.alternatives[0]
