from __future__ import annotations

from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_origins(raw: Any) -> List[str]:
    """CORS_ALLOW_ORIGINS as a list: "*", a comma-separated string or a list."""
    if raw is None:
        return ["*"]

    if isinstance(raw, list):
        items = [str(x).strip() for x in raw]
        items = [x for x in items if x]
        return items or ["*"]

    s = str(raw).strip()
    if not s or s == "*":
        return ["*"]

    if "," in s:
        parts = [p.strip() for p in s.split(",")]
        parts = [p for p in parts if p]
        return parts or ["*"]

    return [s]


class Settings(BaseSettings):
    """
    Central app settings.

    Retention cadence (3-day window, daily tick) is fixed in code; only the
    on/off switch lives here so tests and one-off tools can run without the
    background job.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Identity and logging
    env: str = Field(default="local", alias="APP_ENV")
    app_name: str = Field(default="statcounter", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # uvicorn (single worker)
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # Storage: DATABASE_URL wins; otherwise a SQLite file at DB_PATH
    database_url: str = Field(default="", alias="DATABASE_URL")
    db_path: str = Field(default="./data/statcounter.sqlite", alias="DB_PATH")

    # Cookie sessions
    session_secret: str = Field(default="change-me", alias="SESSION_SECRET")
    session_max_age: int = Field(default=86400 * 7, alias="SESSION_MAX_AGE")
    session_https_only: bool = Field(default=False, alias="SESSION_HTTPS_ONLY")

    # Background purge of stale reports
    retention_enabled: bool = Field(default=True, alias="RETENTION_ENABLED")

    # How far back /djin/month may look
    history_window_days: int = Field(default=30, alias="HISTORY_WINDOW_DAYS")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _norm_cors_allow_origins(cls, v: Any) -> list[str]:
        return _split_origins(v)

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    @field_validator("database_url", mode="before")
    @classmethod
    def _norm_database_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("db_path", mode="before")
    @classmethod
    def _norm_db_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "./data/statcounter.sqlite"

    @field_validator("history_window_days", mode="before")
    @classmethod
    def _norm_history_window(cls, v: Any) -> int:
        try:
            days = int(v)
        except (TypeError, ValueError):
            return 30
        return days if days > 0 else 30

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def is_prod(self) -> bool:
        return str(self.env).strip().lower() in ("prod", "production")

    @property
    def resolved_database_url(self) -> str:
        """DATABASE_URL if set, else a sqlite:/// URL built from DB_PATH."""
        if self.database_url:
            return self.database_url

        path = (self.db_path or "").strip() or "./data/statcounter.sqlite"
        if path.startswith("sqlite:"):
            return path

        p = Path(path)
        if not p.is_absolute():
            if str(p).startswith("./"):
                return f"sqlite:///{p.as_posix()}"
            return f"sqlite:///./{p.as_posix()}"

        # Absolute path needs 4 slashes after scheme (sqlite:////abs/path)
        return f"sqlite:////{p.as_posix().lstrip('/')}"


settings = Settings()
