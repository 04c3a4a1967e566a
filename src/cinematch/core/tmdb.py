from __future__ import annotations

from typing import Any, Literal

import httpx

TMDB_API_BASE = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"
TMDB_WEB_BASE = "https://www.themoviedb.org"

POSTER_PLACEHOLDER_URL = "https://placehold.co/300x450/374151/f8fafc?text=No+Poster"

MediaType = Literal["movie", "tv"]


class TMDBError(RuntimeError):
    pass


class TMDBNotFound(TMDBError):
    pass


def image_url(path: str | None, size: str = "w500") -> str:
    if not path:
        return POSTER_PLACEHOLDER_URL
    return f"{TMDB_IMAGE_BASE}/{size}/{path.lstrip('/')}"


def web_url(media_type: MediaType, media_id: int) -> str:
    return f"{TMDB_WEB_BASE}/{media_type}/{media_id}"


def _video_languages(language: str) -> str:
    # Ask for localized videos plus English and language-less uploads, otherwise
    # TMDB filters videos down to the request language only.
    primary = language.split("-", 1)[0].lower()
    langs = [primary] if primary and primary != "en" else []
    return ",".join([*langs, "en", "null"])


def fetch_media_details(
    media_type: MediaType,
    media_id: int,
    *,
    api_key: str | None,
    language: str = "tr-TR",
    client: httpx.Client | None = None,
    timeout_s: float = 10.0,
) -> dict[str, Any]:
    """Fetch extended details (credits, videos, keywords) for a movie or TV show."""

    if media_type not in ("movie", "tv"):
        raise ValueError(f"Unknown media type: {media_type}")
    if not api_key:
        raise TMDBError("TMDB_API_KEY is not configured")

    close_client = False
    if client is None:
        client = httpx.Client(
            headers={"Accept": "application/json"},
            timeout=timeout_s,
        )
        close_client = True

    try:
        try:
            resp = client.get(
                f"{TMDB_API_BASE}/{media_type}/{media_id}",
                params={
                    "api_key": api_key,
                    "language": language,
                    "append_to_response": "credits,videos,keywords",
                    "include_video_language": _video_languages(language),
                },
            )
        except httpx.HTTPError as e:
            raise TMDBError(f"TMDB request failed: {e}") from e

        if resp.status_code == 404:
            raise TMDBNotFound(f"No TMDB {media_type} with id {media_id}")
        if resp.status_code >= 400:
            raise TMDBError(f"TMDB responded with {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise TMDBError("TMDB returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise TMDBError("TMDB returned an unexpected payload")
        return payload
    finally:
        if close_client:
            client.close()

