from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.pitchcoach.main import app


async def test_root_health_check():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


async def test_v1_health_check():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/v1/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok", "version": "v1"}


async def test_realtime_status_reports_backbone_and_connections():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/v1/system/realtime")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "backbone": "single-instance",
        "connections": {"activeConnections": 0, "sessionIds": []},
    }
