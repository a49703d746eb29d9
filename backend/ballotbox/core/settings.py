from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_DATABASE_URL = "sqlite:///./ballot.db"


class Settings(BaseModel):
    database_url: str = Field(default=DEFAULT_DATABASE_URL)
    jwt_secret: str = Field(default="your-secret-key")
    jwt_algorithm: str = Field(default="HS256")
    auto_verify_on_cast: bool = Field(default=True)
    rate_limit_enabled: bool = Field(default=True)
    vote_rate_limit: str = Field(default="10/minute")
    log_file: str = Field(default="ballot.log")
    log_level: str = Field(default="INFO")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name, default)
    if value == "":
        return default
    return value


def _flag(name: str, default: str) -> bool:
    return (_env(name, default) or default) == "1"


def _resolve_database_url() -> str:
    """
    Resolve the store location (in order):
      1. DB_FILE env var (path to a SQLite file).
      2. DATABASE_URL env var (any SQLAlchemy URL).
      3. sqlite:///./ballot.db
    """
    db_file = _env("DB_FILE")
    if db_file:
        return f"sqlite:///{Path(db_file).expanduser()}"
    return _env("DATABASE_URL", DEFAULT_DATABASE_URL) or DEFAULT_DATABASE_URL


def _load_settings() -> Settings:
    return Settings(
        database_url=_resolve_database_url(),
        jwt_secret=_env("JWT_SECRET", "your-secret-key") or "your-secret-key",
        jwt_algorithm=_env("JWT_ALGORITHM", "HS256") or "HS256",
        auto_verify_on_cast=_flag("AUTO_VERIFY_ON_CAST", "1"),
        rate_limit_enabled=_flag("RATE_LIMIT_ENABLED", "1"),
        vote_rate_limit=_env("VOTE_RATE_LIMIT", "10/minute") or "10/minute",
        log_file=_env("LOG_FILE", "ballot.log") or "ballot.log",
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return _load_settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = ["Settings", "get_settings", "reload_settings"]
