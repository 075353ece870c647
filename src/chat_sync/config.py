from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    WS_URL: str = "ws://localhost:5000/ws"
    API_URL: str = "http://localhost:5000/api"

    BUSINESS_ID: str | None = None
    AUTH_TOKEN: str | None = None

    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_MAX_DELAY: float = 30.0
    RECONNECT_MAX_ATTEMPTS: int = 5
    CONNECT_TIMEOUT: float = 10.0

    WS_HEARTBEAT_SECONDS: int = 30

    DEDUPE_RETENTION_SECONDS: float = 300.0
    DEDUPE_SWEEP_INTERVAL: float = 60.0

    CONSECUTIVE_WINDOW_SECONDS: int = 300
    ORPHAN_STATUS_LIMIT: int = 1000

    HTTP_TIMEOUT: float = 15.0

    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
