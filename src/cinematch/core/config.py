from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_JWT_SECRET = "cinematch-dev-secret"
DEFAULT_JWT_REFRESH_SECRET = "cinematch-dev-refresh-secret"


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    database_url: str | None = None

    # Pool sizing. Timeouts are in milliseconds, as in the PG_* env vars.
    pool_max: int = 20
    idle_timeout_ms: int = 30_000
    connect_timeout_ms: int = 2_000
    force_ssl: bool = False

    environment: str = "development"
    log_level: str = "INFO"

    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_refresh_secret: str = DEFAULT_JWT_REFRESH_SECRET
    access_token_ttl_s: int = 15 * 60
    refresh_token_ttl_s: int = 7 * 24 * 60 * 60

    tmdb_api_key: str | None = None
    tmdb_language: str = "tr-TR"
    trailer_terms: tuple[str, ...] = field(default=("türkçe", "turkish"))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def _getenv(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name, default)
    if v is None:
        return None
    v = v.strip()
    return v if v else None


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw, 10)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _getenv_terms(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = _getenv(name)
    if raw is None:
        return default
    return tuple(t.strip().lower() for t in raw.split(",") if t.strip())


def get_settings() -> Settings:
    """Build settings from the environment.

    This is the only place env vars are read (CORS origins aside, which the app
    factory reads directly). A local `.env` is loaded first but never overrides
    variables that are already set.
    """
    load_dotenv(override=False)

    environment = (_getenv("CINEMATCH_ENV", "development") or "development").lower()
    jwt_secret = _getenv("JWT_SECRET")
    jwt_refresh_secret = _getenv("JWT_REFRESH_SECRET")
    if environment == "production" and not (jwt_secret and jwt_refresh_secret):
        raise ConfigError("JWT_SECRET and JWT_REFRESH_SECRET must be set in production")

    return Settings(
        database_url=_getenv("DATABASE_URL"),
        pool_max=_getenv_int("PG_POOL_MAX", 20),
        idle_timeout_ms=_getenv_int("PG_IDLE_TIMEOUT", 30_000),
        connect_timeout_ms=_getenv_int("PG_CONN_TIMEOUT", 2_000),
        force_ssl=(_getenv("PG_FORCE_SSL", "false") or "false").lower() == "true",
        environment=environment,
        log_level=(_getenv("CINEMATCH_LOG_LEVEL", "INFO") or "INFO").upper(),
        jwt_secret=jwt_secret or DEFAULT_JWT_SECRET,
        jwt_refresh_secret=jwt_refresh_secret or DEFAULT_JWT_REFRESH_SECRET,
        access_token_ttl_s=_getenv_int("JWT_ACCESS_TTL_S", 15 * 60),
        refresh_token_ttl_s=_getenv_int("JWT_REFRESH_TTL_S", 7 * 24 * 60 * 60),
        tmdb_api_key=_getenv("TMDB_API_KEY"),
        tmdb_language=_getenv("TMDB_LANGUAGE", "tr-TR") or "tr-TR",
        trailer_terms=_getenv_terms("CINEMATCH_TRAILER_TERMS", ("türkçe", "turkish")),
    )
