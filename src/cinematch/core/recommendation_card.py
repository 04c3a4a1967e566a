from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Final

from cinematch.core.ratings import RATING_ACTIONS, RATING_MAX, RATING_MIN
from cinematch.core.tmdb import image_url, web_url

UserRating = float | str | None

MAX_TOPICS: Final[int] = 3
MAX_FACTORS: Final[int] = 3
MAX_CAST: Final[int] = 6

# TMDB genre ids used for the audience factors.
GENRE_FAMILY = 10751
GENRE_ROMANCE = 10749
GENRE_ACTION = 28
GENRE_COMEDY = 35
GENRE_DRAMA = 18
GENRE_SCIENCE_FICTION = 878

_GENRE_FACTORS: Final[tuple[tuple[int, str], ...]] = (
    (GENRE_FAMILY, "Family friendly"),
    (GENRE_ROMANCE, "Romantic"),
    (GENRE_ACTION, "Action packed"),
    (GENRE_COMEDY, "Funny"),
    (GENRE_DRAMA, "Dramatic"),
    (GENRE_SCIENCE_FICTION, "Science fiction"),
)

_TOPIC_KEYWORDS: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (("love", "romance", "romantic", "marriage", "relationship", "lover"), "Love & Relationships"),
    (("war", "soldier", "army", "battle", "conflict", "attack"), "War & Conflict"),
    (("family", "mother", "father", "child", "brother", "sister", "parent"), "Family"),
    (("crime", "murder", "police", "detective", "investigation", "killer"), "Crime & Mystery"),
    (("school", "student", "college", "university", "teacher", "class"), "Education & Youth"),
    (("business", "company", "money", "success", "career", "boss"), "Work & Career"),
    (("friendship", "friend", "group", "team", "gang"), "Friendship & Teamwork"),
    (("future", "technology", "robot", "space", "science", "artificial"), "Science & Technology"),
    (("history", "historical", "ancient", "era", "century", "past"), "History"),
    (("horror", "terror", "monster", "ghost", "evil", "haunted"), "Horror & Suspense"),
    (("comedy", "funny", "hilarious", "joke", "humor"), "Comedy"),
    (("adventure", "journey", "quest", "explore", "expedition", "voyage"), "Adventure & Discovery"),
    (("magic", "wizard", "dragon", "fantasy", "spell", "witch"), "Fantasy & Magic"),
    (("music", "song", "dance", "concert", "musician", "artist"), "Music & Art"),
    (("sport", "race", "competition", "champion", "tournament", "game"), "Sports & Competition"),
)

_WRITER_JOBS: Final[frozenset[str]] = frozenset(
    {"Writer", "Screenplay", "Story", "Novel", "Creator"}
)


@dataclass(frozen=True)
class Trailer:
    url: str
    key: str | None
    source: str  # "youtube" or "tmdb"


@dataclass(frozen=True)
class Person:
    name: str
    role: str | None = None
    profile_path: str | None = None


@dataclass(frozen=True)
class MediaDetails:
    media_type: str
    media_id: int
    cast: list[Person]
    directors: list[Person]
    writers: list[Person]
    keywords: list[str]
    trailer: Trailer


@dataclass(frozen=True)
class RatingControls:
    state: str
    slider_value: float
    can_skip: bool
    actions: tuple[str, ...] = RATING_ACTIONS


@dataclass(frozen=True)
class CardView:
    media_id: int
    media_type: str
    title: str
    poster_url: str
    release_date: str | None
    release_year: int | None
    overview: str
    genres: list[str]
    topics: list[str]
    factors: list[str]
    match_score: float | None
    match_tier: str | None
    reasons: list[str] = field(default_factory=list)
    rating: RatingControls | None = None


def is_tv(media: dict[str, Any]) -> bool:
    media_type = media.get("media_type")
    if media_type:
        return media_type == "tv"
    return "name" in media


def media_type_of(media: dict[str, Any]) -> str:
    return "tv" if is_tv(media) else "movie"


def media_title(media: dict[str, Any]) -> str:
    if is_tv(media):
        return media.get("name") or media.get("original_name") or ""
    return media.get("title") or media.get("original_title") or ""


def release_date(media: dict[str, Any]) -> str | None:
    value = media.get("first_air_date") if is_tv(media) else media.get("release_date")
    return value or None


def release_year(media: dict[str, Any]) -> int | None:
    value = release_date(media)
    if not value or len(value) < 4:
        return None
    try:
        return int(value[:4])
    except ValueError:
        return None


def match_tier(score: float) -> str:
    if not 0 <= score <= 100:
        raise ValueError(f"match score must be between 0 and 100, got {score}")
    if score >= 90:
        return "excellent"
    if score >= 80:
        return "great"
    if score >= 70:
        return "good"
    return "fair"


def genre_names(genre_ids: list[int] | None, genres: dict[int, str]) -> list[str]:
    return [genres[g] for g in (genre_ids or []) if g in genres]


def topics(overview: str | None, genre_ids: list[int] | None, genres: dict[int, str]) -> list[str]:
    """Label an overview with up to three topics, falling back to the first two genres."""

    text = (overview or "").lower()
    found: list[str] = []
    for keywords, topic in _TOPIC_KEYWORDS:
        if any(re.search(rf"\b{re.escape(k)}", text) for k in keywords):
            found.append(topic)

    if not found:
        found = genre_names((genre_ids or [])[:2], genres)

    return found[:MAX_TOPICS]


def factors(media: dict[str, Any], *, today: date | None = None) -> list[str]:
    out: list[str] = []

    year = release_year(media)
    if year is not None:
        age = (today or date.today()).year - year
        if age <= 5:
            out.append("Recent release")
        elif age <= 15:
            out.append("Modern classic")
        elif age >= 25:
            out.append("Nostalgic classic")

    genre_ids = set(media.get("genre_ids") or [])
    for genre_id, label in _GENRE_FACTORS:
        if genre_id in genre_ids:
            out.append(label)

    return out[:MAX_FACTORS]


def parse_user_rating(value: UserRating) -> UserRating:
    """Validate a card rating: a 0-10 number, a sentinel action, or None."""

    if value is None:
        return None
    if isinstance(value, str):
        if value in RATING_ACTIONS:
            return value
        try:
            value = float(value)
        except ValueError as e:
            raise ValueError(f"unknown rating action: {value!r}") from e
    if isinstance(value, bool):
        raise ValueError("rating must be a number")
    rating = float(value)
    if not RATING_MIN <= rating <= RATING_MAX:
        raise ValueError(f"rating must be between {RATING_MIN:g} and {RATING_MAX:g}")
    return rating


def rating_controls(user_rating: UserRating) -> RatingControls:
    rating = parse_user_rating(user_rating)
    if rating is None:
        state = "unrated"
    elif rating == "skip":
        state = "skipped"
    elif isinstance(rating, str):
        state = rating
    else:
        state = "rated"

    return RatingControls(
        state=state,
        slider_value=rating if isinstance(rating, float) else 0.0,
        can_skip=rating is None,
    )


def build_card(
    media: dict[str, Any],
    *,
    match_score: float | None,
    reasons: list[str] | None,
    genres: dict[int, str],
    user_rating: UserRating = None,
    show_reasons: bool = True,
    show_match_score: bool = True,
    today: date | None = None,
) -> CardView:
    genre_ids = media.get("genre_ids") or []
    return CardView(
        media_id=int(media["id"]),
        media_type=media_type_of(media),
        title=media_title(media),
        poster_url=image_url(media.get("poster_path"), "w500"),
        release_date=release_date(media),
        release_year=release_year(media),
        overview=media.get("overview") or "",
        genres=genre_names(genre_ids, genres),
        topics=topics(media.get("overview"), genre_ids, genres),
        factors=factors(media, today=today),
        match_score=match_score if show_match_score else None,
        match_tier=match_tier(match_score) if show_match_score and match_score is not None else None,
        reasons=list(reasons or []) if show_reasons else [],
        rating=rating_controls(user_rating),
    )


def _youtube_videos(details: dict[str, Any]) -> list[dict[str, Any]]:
    videos = (details.get("videos") or {}).get("results") or []
    return [v for v in videos if isinstance(v, dict) and v.get("site") == "YouTube"]


def select_trailer_key(details: dict[str, Any], localized_terms: tuple[str, ...] = ()) -> str | None:
    """Pick a YouTube video key.

    Order: localized trailer, any trailer, teaser, any other YouTube video.
    """

    videos = _youtube_videos(details)

    def _localized(video: dict[str, Any]) -> bool:
        name = str(video.get("name") or "").lower()
        return any(term in name for term in localized_terms)

    candidates = (
        [v for v in videos if v.get("type") == "Trailer" and _localized(v)],
        [v for v in videos if v.get("type") == "Trailer"],
        [v for v in videos if v.get("type") == "Teaser"],
        videos,
    )
    for group in candidates:
        for video in group:
            if video.get("key"):
                return str(video["key"])
    return None


def trailer_for(
    media_type: str,
    media_id: int,
    details: dict[str, Any] | None,
    localized_terms: tuple[str, ...] = (),
) -> Trailer:
    key = select_trailer_key(details, localized_terms) if details else None
    if key:
        return Trailer(url=f"https://www.youtube.com/watch?v={key}", key=key, source="youtube")
    return Trailer(url=web_url("tv" if media_type == "tv" else "movie", media_id), key=None, source="tmdb")


def _is_writer(job: str | None) -> bool:
    return bool(job) and (job in _WRITER_JOBS or "writ" in job.lower())


def cast_and_crew(details: dict[str, Any]) -> tuple[list[Person], list[Person], list[Person]]:
    credits = details.get("credits") or {}

    cast = [
        Person(name=m["name"], role=m.get("character"), profile_path=m.get("profile_path"))
        for m in (credits.get("cast") or [])[:MAX_CAST]
        if isinstance(m, dict) and m.get("name")
    ]

    crew = [m for m in (credits.get("crew") or []) if isinstance(m, dict) and m.get("name")]
    directors = [
        Person(name=m["name"], role="Director", profile_path=m.get("profile_path"))
        for m in crew
        if m.get("job") == "Director"
    ]
    writers = [
        Person(name=m["name"], role=m.get("job"), profile_path=m.get("profile_path"))
        for m in crew
        if _is_writer(m.get("job"))
    ]

    # TV shows list their creators separately from the crew.
    for c in details.get("created_by") or []:
        if isinstance(c, dict) and c.get("name") and all(w.name != c["name"] for w in writers):
            writers.append(Person(name=c["name"], role="Creator", profile_path=c.get("profile_path")))

    return cast, directors, writers


def keyword_names(details: dict[str, Any]) -> list[str]:
    block = details.get("keywords") or {}
    # Movies use "keywords", TV shows use "results".
    items = block.get("keywords") or block.get("results") or []
    return [k["name"] for k in items if isinstance(k, dict) and k.get("name")]


def build_media_details(
    media_type: str,
    media_id: int,
    details: dict[str, Any],
    localized_terms: tuple[str, ...] = (),
) -> MediaDetails:
    cast, directors, writers = cast_and_crew(details)
    return MediaDetails(
        media_type=media_type,
        media_id=media_id,
        cast=cast,
        directors=directors,
        writers=writers,
        keywords=keyword_names(details),
        trailer=trailer_for(media_type, media_id, details, localized_terms),
    )
