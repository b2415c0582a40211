import httpx
import pytest

from src.pitchcoach.client.transcript_buffer import SessionTranscriptBuffer
from src.pitchcoach.domain.models.coaching_session import FeedbackMetric, TranscriptChunk
from src.pitchcoach.main import app


def _api(tenant_id):
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test/api/v1",
        headers={"X-Tenant-ID": tenant_id},
    )


async def test_buffer_round_trip_against_api(tenant_id):
    async with _api(tenant_id) as client:
        buffer = SessionTranscriptBuffer(client)
        session = await buffer.create_session("Cold call opener", start=True)
        assert buffer.session_id == str(session.id)
        assert session.status.value == "in-progress"

        sent = await buffer.add_chunk(TranscriptChunk(text="Hi, this is Sam.", is_final=True, confidence=0.9))
        assert sent
        assert buffer.pending == []

        await buffer.add_chunk(
            TranscriptChunk(text="Do you have a minute?", is_final=True, confidence=0.8),
            send_immediately=False,
        )
        assert len(buffer.pending) == 1

        completed = await buffer.complete_session(
            "Hi, this is Sam. Do you have a minute?",
            42,
            [FeedbackMetric(category="Clarity", score=80, feedback="Clear.")],
        )

    assert completed.status.value == "completed"
    assert completed.overall_score == 80
    assert completed.duration == 42
    assert [chunk.text for chunk in completed.transcript][:2] == ["Hi, this is Sam.", "Do you have a minute?"]
    assert completed.transcript[-1].confidence == 0.9
    assert not buffer.has_active_session
    assert buffer.pending == []


async def test_failed_sends_stay_pending_for_retry():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request.url.path)
        if len(attempts) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test/api/v1") as client:
        buffer = SessionTranscriptBuffer(client)
        buffer.attach("abc")
        chunk = TranscriptChunk(text="Thanks for your time.", is_final=True, confidence=0.9)

        assert not await buffer.add_chunk(chunk)
        assert buffer.pending == [chunk]

        assert await buffer.send_all()
        assert buffer.pending == []

    assert attempts == ["/api/v1/sessions/abc/transcript", "/api/v1/sessions/abc/transcript"]


async def test_operations_need_a_session():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as client:
        buffer = SessionTranscriptBuffer(client)
        with pytest.raises(RuntimeError):
            await buffer.send_all()

        buffer.attach("abc")
        buffer.clear()
        assert buffer.session_id is None
