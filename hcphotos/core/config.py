"""Application configuration loaded from environment variables."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    APP_NAME: str = "Hack Club Photos Feed"
    DEBUG: bool = False

    # JWT (stream viewer identification only; tokens are issued elsewhere)
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Feed client
    API_BASE_URL: str = "http://localhost:3000"
    HTTP_TIMEOUT_SECONDS: float = 30.0
    FEED_PAGE_SIZE: int = 20
    FEED_POLL_LIMIT: int = 10
    FEED_POLL_INTERVAL_SECONDS: float = 30.0
    FEED_NEW_ITEM_SECONDS: float = 5.0
    FEED_SENTINEL_THRESHOLD: float = 0.1
    RECONNECT_BASE_DELAY_MS: int = 1000
    RECONNECT_MAX_DELAY_MS: int = 30000
    RECONNECT_MAX_ATTEMPTS: int | None = None
    MEDIA_URL_BATCH_SIZE: int = 100

    # Push channel (server side)
    SSE_HEARTBEAT_SECONDS: float = 30.0
    SSE_QUEUE_SIZE: int = 100
    BANNED_USER_IDS: list[str] = []


settings = Settings()
