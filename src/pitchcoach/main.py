import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.pitchcoach.api.v1.routes_analytics import router as analytics_router_v1
from src.pitchcoach.api.v1.routes_sessions import router as sessions_router_v1
from src.pitchcoach.api.v1.routes_system import router as system_router_v1
from src.pitchcoach.api.v1.routes_transcription import router as transcription_router_v1
from src.pitchcoach.config import settings
from src.pitchcoach.infra.db.bootstrap import init_sql_repositories
from src.pitchcoach.realtime.backbone import BackboneMode, attach_backbone
from src.pitchcoach.realtime.channel import SessionEventChannel
from src.pitchcoach.services.transcription.deepgram import DeepgramConnector
from src.pitchcoach.services.transcription.gateway import TranscriptionGateway

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="PitchCoach Real-time Transcription API")

# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Real-time channel. One gateway per process; it holds the live provider
# connections for every session whose audio reaches this process.
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*" if allow_origins == ["*"] else allow_origins,
    max_http_buffer_size=settings.max_http_buffer_size,
)
gateway = TranscriptionGateway(DeepgramConnector(settings.deepgram_api_key))
channel = SessionEventChannel(sio, gateway)
channel.register()

app.state.gateway = gateway
app.state.backbone_mode = BackboneMode.SINGLE_INSTANCE


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    Switches to SQL-backed sessions when USE_SQL_REPOS and DATABASE_URL are
    set, then attaches the Redis backbone before any socket connects. Both
    steps fall back to in-process behaviour when not configured.
    """

    init_sql_repositories()
    app.state.backbone_mode = await attach_backbone(
        sio,
        settings.redis_url,
        timeout=settings.redis_connect_timeout,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await gateway.close_all()


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(sessions_router_v1, prefix="/api/v1")
app.include_router(transcription_router_v1, prefix="/api/v1")
app.include_router(analytics_router_v1, prefix="/api/v1")

# Entry point for uvicorn: socket.io traffic on ``settings.socketio_path``,
# everything else (including lifespan events) goes to the FastAPI app.
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app, socketio_path=settings.socketio_path)
