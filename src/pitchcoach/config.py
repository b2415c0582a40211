from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Deepgram speech-to-text provider.
    deepgram_api_key: Optional[str] = os.getenv("DEEPGRAM_API_KEY")
    deepgram_model: str = os.getenv("DEEPGRAM_MODEL", "nova-2")
    deepgram_live_url: str = os.getenv("DEEPGRAM_LIVE_URL", "wss://api.deepgram.com/v1/listen")
    deepgram_rest_url: str = os.getenv("DEEPGRAM_REST_URL", "https://api.deepgram.com/v1/listen")
    # Seconds the gateway waits for a transcription result per submitted chunk
    # before resolving with an empty placeholder.
    transcript_wait_seconds: float = float(os.getenv("TRANSCRIPT_WAIT_SECONDS", "5"))

    # Optional Redis pub/sub backbone for fanning socket events out across
    # server processes. When unset the channel runs single-instance.
    redis_url: Optional[str] = os.getenv("REDIS_URL")
    redis_connect_timeout: float = float(os.getenv("REDIS_CONNECT_TIMEOUT", "3"))

    # Real-time channel transport.
    socketio_path: str = os.getenv("SOCKETIO_PATH", "socket.io")
    socketio_namespace: str = os.getenv("SOCKETIO_NAMESPACE", "/")
    max_http_buffer_size: int = int(os.getenv("MAX_HTTP_BUFFER_SIZE", str(100_000_000)))
    # Audio chunks above this size are logged as suspicious but still processed.
    max_audio_chunk_bytes: int = int(os.getenv("MAX_AUDIO_CHUNK_BYTES", "10240"))

    # Optional database configuration for SQL-backed repositories.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Basic API authentication configuration.
    # When ENABLE_API_AUTH=true, protected endpoints and socket connections
    # require a valid API key.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated list of allowed API keys when auth is enabled.
    api_keys: Optional[str] = os.getenv("API_KEYS")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
