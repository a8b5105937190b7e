"""
Settings, read from the environment or `.env` by pydantic-settings.

SQLite (aiosqlite) is the default store; point `DATABASE_URL` at
`postgresql+asyncpg://...` to run on PostgreSQL.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Warehouse Assignment Service"
    DEBUG: bool = False
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # ── Database ─────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./warehouse.db"

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Blocking-driver URL for Alembic."""
        return self.DATABASE_URL.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")

    # ── Auth ─────────────────────────────────────────────────────────
    SECRET_KEY: str = "CHANGE-ME-in-production-use-a-real-secret"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    SESSION_INACTIVITY_TIMEOUT_MINUTES: int = 120

    # ── Warehouse ────────────────────────────────────────────────────
    # a lease not renewed within this window is free for anyone
    LOCATION_LEASE_MINUTES: int = 30
    # catalog pickers stay empty below this many characters
    MIN_SEARCH_LENGTH: int = 2

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
