from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import psycopg
from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from cinematch.api.auth import BearerTokenMiddleware
from cinematch.api.errors import (
    ApiError,
    api_error_handler,
    unhandled_exception_handler,
    validation_error_handler,
)
from cinematch.api.routes import router
from cinematch.core.config import Settings, get_settings
from cinematch.core.database import Database
from cinematch.core.detail_cache import DetailCache
from cinematch.core.schema import run_migrations

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _parse_csv_env(name: str) -> list[str]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return []

    # Support both comma-separated values and newline-separated values (common in PaaS).
    parts = [p.strip() for p in raw.replace("\n", ",").split(",")]
    return [p for p in parts if p]


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _startup(db: Database) -> None:
    if not db.connect():
        return
    try:
        run_migrations(db)
    except psycopg.Error:
        logger.exception("Schema migration failed; continuing with the existing schema")


def create_app(*, settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    db = database or Database(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # psycopg connects and migrates synchronously; keep that off the event loop.
        await run_in_threadpool(_startup, db)
        yield
        await run_in_threadpool(db.shutdown)

    app = FastAPI(title="CineMatch", version="0.1.0", lifespan=lifespan)

    # Attach shared components.
    app.state.settings = settings
    app.state.db = db
    app.state.detail_cache = DetailCache()

    # CORS is opt-in. Configure allowed origins via env var, e.g.
    #   CINEMATCH_CORS_ORIGINS=https://your.site,https://admin.your.site
    cors_origins = _parse_csv_env("CINEMATCH_CORS_ORIGINS")
    if cors_origins:
        # Allow '*' for quick demos; do not allow credentials with wildcard.
        allow_all = "*" in cors_origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if allow_all else cors_origins,
            allow_credentials=False,
            allow_methods=["*"] if allow_all else ["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.add_middleware(BearerTokenMiddleware, settings=settings)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    # Ensure unexpected errors don't leak internals.
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(router)
    return app


app = create_app()
