from fastapi import APIRouter, Request

from src.pitchcoach.realtime.backbone import BackboneMode

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint."""
    return {"status": "ok", "version": "v1"}


@router.get("/system/realtime")
async def realtime_status_v1(request: Request) -> dict:
    """Report how the real-time channel is running on this process.

    ``backbone`` is ``"redis"`` when socket events fan out through Redis
    pub/sub and ``"single-instance"`` otherwise. ``connections`` lists the
    live transcription streams this process holds.
    """

    state = request.app.state
    mode = getattr(state, "backbone_mode", BackboneMode.SINGLE_INSTANCE)
    gateway = getattr(state, "gateway", None)
    connections = gateway.get_connection_stats() if gateway is not None else {"activeConnections": 0, "sessionIds": []}
    return {"backbone": mode.value, "connections": connections}
