from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Final, Literal

from cinematch.core.database import Database

ONBOARDING_THRESHOLD: Final[int] = 10

RatingAction = Literal["not_watched", "not_interested", "skip"]
MediaType = Literal["movie", "tv"]

RATING_ACTIONS: Final[tuple[str, ...]] = ("not_watched", "not_interested", "skip")
RATING_MIN: Final[float] = 0.0
RATING_MAX: Final[float] = 10.0

COUNT_USER_RATINGS_SQL = (
    "SELECT COUNT(*)::int AS count FROM user_ratings WHERE user_id = %s"
)

UPSERT_RATING_SQL = (
    "INSERT INTO user_ratings (user_id, movie_id, media_type, movie_title, rating, action) "
    "VALUES (%s, %s, %s, %s, %s, %s) "
    "ON CONFLICT (user_id, movie_id, media_type) DO UPDATE SET "
    "movie_title = COALESCE(EXCLUDED.movie_title, user_ratings.movie_title), "
    "rating = EXCLUDED.rating, action = EXCLUDED.action, updated_at = NOW() "
    "RETURNING movie_id, media_type, movie_title, rating, action, updated_at"
)

LIST_USER_RATINGS_SQL = (
    "SELECT movie_id, media_type, movie_title, rating, action, updated_at "
    "FROM user_ratings WHERE user_id = %s ORDER BY updated_at DESC, id DESC"
)


@dataclass(frozen=True)
class StoredRating:
    movie_id: int
    media_type: str
    movie_title: str | None
    rating: float | None
    action: str | None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class OnboardingStatus:
    rating_count: int
    remaining: int
    complete: bool

    @property
    def state(self) -> str:
        return "complete" if self.complete else "pending"


def onboarding_status(rating_count: int, *, threshold: int = ONBOARDING_THRESHOLD) -> OnboardingStatus:
    remaining = max(0, threshold - rating_count)
    return OnboardingStatus(
        rating_count=rating_count,
        remaining=remaining,
        complete=rating_count >= threshold,
    )


def coerce_user_id(user_id: Any) -> int:
    """Validate a user identity taken from a token or request context."""
    if isinstance(user_id, bool):
        raise TypeError("user id must be an integer")
    value = int(user_id)
    if value <= 0:
        raise ValueError(f"invalid user id: {user_id!r}")
    return value


def count_user_ratings(db: Database, user_id: Any) -> int:
    row = db.query(COUNT_USER_RATINGS_SQL, (coerce_user_id(user_id),)).first()
    return int(row["count"]) if row else 0


def _as_float(value: Decimal | float | None) -> float | None:
    # NUMERIC columns come back as Decimal.
    return None if value is None else float(value)


def _row_to_rating(row: dict[str, Any]) -> StoredRating:
    return StoredRating(
        movie_id=int(row["movie_id"]),
        media_type=row.get("media_type") or "movie",
        movie_title=row.get("movie_title"),
        rating=_as_float(row.get("rating")),
        action=row.get("action"),
        updated_at=row.get("updated_at"),
    )


def save_rating(
    db: Database,
    user_id: Any,
    *,
    movie_id: int,
    media_type: MediaType = "movie",
    movie_title: str | None = None,
    rating: float | None = None,
    action: RatingAction | None = None,
) -> StoredRating | None:
    """Record (or replace) one rating. Returns None if the store wrote nothing."""

    if (rating is None) == (action is None):
        raise ValueError("exactly one of rating or action is required")
    if rating is not None and not (RATING_MIN <= rating <= RATING_MAX):
        raise ValueError(f"rating must be between {RATING_MIN:g} and {RATING_MAX:g}")
    if action is not None and action not in RATING_ACTIONS:
        raise ValueError(f"unknown rating action: {action!r}")

    row = db.query(
        UPSERT_RATING_SQL,
        (coerce_user_id(user_id), movie_id, media_type, movie_title, rating, action),
    ).first()
    return _row_to_rating(row) if row else None


def list_user_ratings(db: Database, user_id: Any) -> list[StoredRating]:
    result = db.query(LIST_USER_RATINGS_SQL, (coerce_user_id(user_id),))
    return [_row_to_rating(r) for r in result.rows]
