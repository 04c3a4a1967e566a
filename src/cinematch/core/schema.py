from __future__ import annotations

import logging

from cinematch.core.database import Database

logger = logging.getLogger(__name__)

MIGRATIONS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
      id SERIAL PRIMARY KEY,
      email VARCHAR(255) NOT NULL UNIQUE,
      password_hash TEXT NOT NULL,
      first_name VARCHAR(100),
      last_name VARCHAR(100),
      created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_ratings (
      id SERIAL PRIMARY KEY,
      user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      movie_id INTEGER NOT NULL,
      media_type VARCHAR(5) NOT NULL DEFAULT 'movie' CHECK (media_type IN ('movie', 'tv')),
      movie_title TEXT,
      rating NUMERIC(3, 1) CHECK (rating >= 0 AND rating <= 10),
      action VARCHAR(20) CHECK (action IN ('not_watched', 'not_interested', 'skip')),
      created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
      CONSTRAINT user_ratings_unique UNIQUE (user_id, movie_id, media_type),
      CONSTRAINT user_ratings_rating_or_action CHECK ((rating IS NULL) <> (action IS NULL))
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_ratings_user_id ON user_ratings (user_id)",
)


def run_migrations(db: Database) -> bool:
    """Apply the idempotent DDL in one transaction.

    Returns False (without touching the store) when the database is unavailable.
    """

    if not db.is_connected:
        logger.warning("Skipping migrations: database not available")
        return False

    with db.transaction() as conn:
        for statement in MIGRATIONS:
            conn.execute(statement)

    logger.info("Applied %d schema statements", len(MIGRATIONS))
    return True
