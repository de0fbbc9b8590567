"""
Configuración central de la aplicación.
Usa Pydantic BaseSettings para validar variables de entorno.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── App ──────────────────────────────────────────
    APP_NAME: str = "Hoofbook"
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    API_V1_PREFIX: str = "/api/v1"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

    # ── Base de datos local (offline-first) ──────────
    LOCAL_DATABASE_URL: str = "sqlite+aiosqlite:///./hoofbook.db"

    # ── Backend remoto (PostgREST) ───────────────────
    REMOTE_API_URL: str = "http://localhost:54321"
    REMOTE_API_KEY: str = "your-remote-anon-key"
    REMOTE_TIMEOUT_SECONDS: float = 15.0

    # ── Sesión ───────────────────────────────────────
    SESSION_TOKEN_PATH: str = "./.session/access_token"

    # ── Redis / Celery ───────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # ── Sincronización ───────────────────────────────
    SYNC_BATCH_LIMIT: int = 50
    SYNC_PERIODIC_INTERVAL_MINUTES: int = 15
    SYNC_FLEX_MINUTES: int = 5
    SYNC_BACKOFF_BASE_SECONDS: float = 60.0
    SYNC_BACKOFF_MAX_SECONDS: float = 5 * 60 * 60
    SYNC_MAX_ATTEMPTS: int = 5
    SYNC_MAX_ITEM_RETRIES: int = 5
    SYNC_RETENTION_DAYS: int = 7
    SYNC_EXPEDITED_QUOTA: int | None = None

    @property
    def session_token_file(self) -> Path:
        return Path(self.SESSION_TOKEN_PATH)


@lru_cache
def get_settings() -> Settings:
    return Settings()
