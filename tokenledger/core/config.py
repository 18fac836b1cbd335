from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None or v == "":
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if not s:
        return _DEFAULT_CORS.copy()
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="tokenledger", alias="MONGODB_DB_NAME")
    # Upper bound for every store round trip (pymongo client-side operation timeout)
    mongodb_timeout_ms: int = Field(default=5000, alias="MONGODB_TIMEOUT_MS")
    # Multi-document transactions need a replica set; standalone servers use compensation
    mongodb_transactions: bool = Field(default=False, alias="MONGODB_TRANSACTIONS")

    # Ledger
    ledger_max_retries: int = Field(default=3, alias="LEDGER_MAX_RETRIES")
    history_max_limit: int = Field(default=100, alias="HISTORY_MAX_LIMIT")

    # Redis (ARQ notification jobs)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    notifications_enabled: bool = Field(default=True, alias="NOTIFICATIONS_ENABLED")
    notification_queue_size: int = Field(default=1000, alias="NOTIFICATION_QUEUE_SIZE")

    # SMTP; mail is skipped unless host, user and password are all set
    email_host: str | None = Field(default=None, alias="EMAIL_HOST")
    email_port: int = Field(default=587, alias="EMAIL_PORT")
    email_user: str | None = Field(default=None, alias="EMAIL_USER")
    email_pass: str | None = Field(default=None, alias="EMAIL_PASS")
    email_from: str | None = Field(default=None, alias="EMAIL_FROM")
    email_timeout_seconds: float = Field(default=10.0, alias="EMAIL_TIMEOUT_SECONDS")
    feedback_to: str | None = Field(default=None, alias="FEEDBACK_TO")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))


@lru_cache
def get_settings() -> Settings:
    return Settings()
