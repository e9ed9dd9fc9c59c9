"""
RecruitDesk – Application configuration.
Reads environment variables from a .env file via pydantic-settings.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── App ──
    APP_NAME: str = "RecruitDesk"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5001"]

    # ── Database ──
    DATABASE_URL: str = "sqlite+aiosqlite:///./recruitdesk.db"

    # ── JWT ──
    SECRET_KEY: str = "change-me-to-a-random-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # ── Client endpoints (empty = same origin) ──
    API_URL: str = ""
    SOCKET_URL: str = ""

    # ── Socket client ──
    SOCKET_CONNECT_TIMEOUT: float = 5.0
    SOCKET_HANDSHAKE_TIMEOUT: float = 20.0
    SOCKET_RECONNECTION_ATTEMPTS: int = 5
    SOCKET_RECONNECTION_DELAY: float = 1.0
    SOCKET_RECONNECTION_DELAY_MAX: float = 5.0

    # ── Notifications ──
    NOTIFICATION_PAGE_SIZE: int = 20
    NOTIFICATION_PURGE_INTERVAL: float = 60.0

    # ── Email (SMTP) ──
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    MAIL_FROM_NAME: str = "RecruitDesk"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()
