from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.pitchcoach.main import app


async def test_multitenancy_isolation_for_sessions():
    """Sessions created under one tenant are invisible to another."""

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        create_a = await ac.post(
            "/api/v1/sessions/start",
            json={"scenario": "Tenant A pitch"},
            headers={"X-Tenant-ID": "tenant-a"},
        )
        assert create_a.status_code == status.HTTP_201_CREATED
        session_a = create_a.json()
        assert session_a["tenant_id"] == "tenant-a"

        create_b = await ac.post(
            "/api/v1/sessions/start",
            json={"scenario": "Tenant B pitch"},
            headers={"X-Tenant-ID": "tenant-b"},
        )
        assert create_b.status_code == status.HTTP_201_CREATED
        session_b = create_b.json()

        list_a = await ac.get("/api/v1/sessions/", headers={"X-Tenant-ID": "tenant-a"})
        assert list_a.status_code == status.HTTP_200_OK
        assert any(s["id"] == session_a["id"] for s in list_a.json())
        assert all(s["id"] != session_b["id"] for s in list_a.json())

        cross_get = await ac.get(f"/api/v1/sessions/{session_a['id']}", headers={"X-Tenant-ID": "tenant-b"})
        assert cross_get.status_code == status.HTTP_404_NOT_FOUND

        cross_complete = await ac.post(
            f"/api/v1/sessions/{session_a['id']}/complete",
            json={"transcript": "Hijacked.", "duration": 1},
            headers={"X-Tenant-ID": "tenant-b"},
        )
        assert cross_complete.status_code == status.HTTP_404_NOT_FOUND

        own_get = await ac.get(f"/api/v1/sessions/{session_a['id']}", headers={"X-Tenant-ID": "tenant-a"})
        assert own_get.status_code == status.HTTP_200_OK
        assert own_get.json()["status"] == "in-progress"
