from uuid import uuid4

from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.pitchcoach.main import app


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_session_lifecycle_from_ready_to_completed(tenant_id):
    headers = {"X-Tenant-ID": tenant_id}
    async with _client() as ac:
        create_resp = await ac.post("/api/v1/sessions/", json={"scenario": "Pricing objection"}, headers=headers)
        assert create_resp.status_code == status.HTTP_201_CREATED
        session = create_resp.json()
        assert session["status"] == "ready"
        assert session["started_at"] is None
        session_id = session["id"]

        append_resp = await ac.post(
            f"/api/v1/sessions/{session_id}/transcript",
            json={"chunks": [{"text": "That sounds expensive.", "is_final": True, "confidence": 0.8}]},
            headers=headers,
        )
        assert append_resp.status_code == status.HTTP_200_OK
        assert len(append_resp.json()["transcript"]) == 1

        complete_resp = await ac.post(
            f"/api/v1/sessions/{session_id}/complete",
            json={"transcript": "That sounds expensive. Let me show you the value first.", "duration": 95},
            headers=headers,
        )
        # A ready session has not started recording yet.
        assert complete_resp.status_code == status.HTTP_409_CONFLICT

        start_resp = await ac.post("/api/v1/sessions/start", json={"scenario": "Pricing objection"}, headers=headers)
        assert start_resp.status_code == status.HTTP_201_CREATED
        started = start_resp.json()
        assert started["status"] == "in-progress"
        assert started["started_at"] is not None

        complete_resp = await ac.post(
            f"/api/v1/sessions/{started['id']}/complete",
            json={"transcript": "First, you will see the value. Then we talk about price.", "duration": 95},
            headers=headers,
        )
        assert complete_resp.status_code == status.HTTP_200_OK
        completed = complete_resp.json()
        assert completed["status"] == "completed"
        assert completed["completed_at"] is not None
        assert completed["duration"] == 95
        assert len(completed["feedback_metrics"]) == 7
        assert 60 <= completed["overall_score"] <= 100
        final_chunk = completed["transcript"][-1]
        assert final_chunk["is_final"] is True
        assert final_chunk["confidence"] == 0.9

        again = await ac.post(
            f"/api/v1/sessions/{started['id']}/complete",
            json={"transcript": "Another try.", "duration": 10},
            headers=headers,
        )
        assert again.status_code == status.HTTP_409_CONFLICT

        late_append = await ac.post(
            f"/api/v1/sessions/{started['id']}/transcript",
            json={"chunks": [{"text": "One more thing.", "is_final": True, "confidence": 0.9}]},
            headers=headers,
        )
        assert late_append.status_code == status.HTTP_409_CONFLICT


async def test_supplied_metrics_set_overall_score(tenant_id):
    headers = {"X-Tenant-ID": tenant_id}
    async with _client() as ac:
        started = (await ac.post("/api/v1/sessions/start", json={"scenario": "Demo"}, headers=headers)).json()
        resp = await ac.post(
            f"/api/v1/sessions/{started['id']}/complete",
            json={
                "transcript": "Thanks for watching.",
                "duration": 30,
                "feedback_metrics": [
                    {"category": "Clarity", "score": 90, "feedback": "Crisp."},
                    {"category": "Pace", "score": 71, "feedback": "A little fast."},
                ],
            },
            headers=headers,
        )
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["overall_score"] == 80
    assert [m["category"] for m in resp.json()["feedback_metrics"]] == ["Clarity", "Pace"]


async def test_fail_session_and_status_filter(tenant_id):
    headers = {"X-Tenant-ID": tenant_id}
    async with _client() as ac:
        ready = (await ac.post("/api/v1/sessions/", json={"scenario": "Follow-up"}, headers=headers)).json()
        fail_resp = await ac.post(
            f"/api/v1/sessions/{ready['id']}/fail", json={"reason": "microphone unplugged"}, headers=headers
        )
        assert fail_resp.status_code == status.HTTP_200_OK
        assert fail_resp.json()["status"] == "failed"
        assert fail_resp.json()["failure_reason"] == "microphone unplugged"

        fail_again = await ac.post(f"/api/v1/sessions/{ready['id']}/fail", json={}, headers=headers)
        assert fail_again.status_code == status.HTTP_409_CONFLICT

        await ac.post("/api/v1/sessions/", json={"scenario": "Another"}, headers=headers)
        failed = await ac.get("/api/v1/sessions/", params={"status": "failed"}, headers=headers)
        assert [s["id"] for s in failed.json()] == [ready["id"]]
        everything = await ac.get("/api/v1/sessions/", headers=headers)
        assert len(everything.json()) == 2


async def test_transcript_quality_filter(tenant_id):
    headers = {"X-Tenant-ID": tenant_id}
    async with _client() as ac:
        started = (await ac.post("/api/v1/sessions/start", json={"scenario": "Intro"}, headers=headers)).json()
        await ac.post(
            f"/api/v1/sessions/{started['id']}/transcript",
            json={
                "chunks": [
                    {"text": "Welcome to the call.", "is_final": True, "confidence": 0.95},
                    {"text": "in the middle", "is_final": True, "confidence": 0.9},
                    {"text": "Welcome to", "is_final": False, "confidence": 0.6},
                    {"text": "Mumbled words.", "is_final": True, "confidence": 0.2},
                ]
            },
            headers=headers,
        )

        everything = await ac.get(f"/api/v1/sessions/{started['id']}/transcript", headers=headers)
        finals = await ac.get(
            f"/api/v1/sessions/{started['id']}/transcript", params={"final_only": True}, headers=headers
        )
        filtered = await ac.get(
            f"/api/v1/sessions/{started['id']}/transcript",
            params={"final_only": True, "quality_filter": True},
            headers=headers,
        )

    assert len(everything.json()) == 4
    assert len(finals.json()) == 3
    assert [chunk["text"] for chunk in filtered.json()] == ["Welcome to the call."]


async def test_validation_and_missing_sessions(tenant_id):
    headers = {"X-Tenant-ID": tenant_id}
    async with _client() as ac:
        blank = await ac.post("/api/v1/sessions/", json={"scenario": "   "}, headers=headers)
        assert blank.status_code == status.HTTP_400_BAD_REQUEST

        missing = await ac.get(f"/api/v1/sessions/{uuid4()}", headers=headers)
        assert missing.status_code == status.HTTP_404_NOT_FOUND

        started = (await ac.post("/api/v1/sessions/start", json={"scenario": "Intro"}, headers=headers)).json()
        empty_text = await ac.post(
            f"/api/v1/sessions/{started['id']}/transcript",
            json={"chunks": [{"text": "  ", "is_final": True, "confidence": 0.9}]},
            headers=headers,
        )
        assert empty_text.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

        bad_confidence = await ac.post(
            f"/api/v1/sessions/{started['id']}/transcript",
            json={"chunks": [{"text": "Hello.", "is_final": True, "confidence": 1.5}]},
            headers=headers,
        )
        assert bad_confidence.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
