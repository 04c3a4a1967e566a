from __future__ import annotations

from datetime import date

import pytest

from cinematch.core.recommendation_card import (
    build_card,
    build_media_details,
    cast_and_crew,
    factors,
    keyword_names,
    match_tier,
    media_title,
    parse_user_rating,
    rating_controls,
    release_year,
    select_trailer_key,
    topics,
    trailer_for,
)

GENRES = {28: "Action", 18: "Drama", 878: "Science Fiction", 10751: "Family", 35: "Comedy"}

MATRIX = {
    "id": 603,
    "title": "The Matrix",
    "original_title": "The Matrix",
    "overview": "A hacker learns about the true nature of his reality and his role in the war.",
    "poster_path": "/f89U3ADr1oiB1s9GkdPOEpXUk5H.jpg",
    "release_date": "1999-03-30",
    "genre_ids": [28, 878],
}

BREAKING_BAD = {
    "id": 1396,
    "name": "Breaking Bad",
    "original_name": "Breaking Bad",
    "overview": "",
    "first_air_date": "2008-01-20",
    "genre_ids": [18],
}


def _video(key: str, type_: str, name: str = "Official", site: str = "YouTube") -> dict:
    return {"key": key, "type": type_, "name": name, "site": site}


def test_title_and_release_follow_media_type() -> None:
    assert media_title(MATRIX) == "The Matrix"
    assert media_title(BREAKING_BAD) == "Breaking Bad"
    assert media_title({"id": 1, "media_type": "tv", "original_name": "Dark"}) == "Dark"
    assert media_title({"id": 1, "original_title": "Solaris"}) == "Solaris"
    assert release_year(MATRIX) == 1999
    assert release_year(BREAKING_BAD) == 2008
    assert release_year({"id": 1, "title": "x", "release_date": ""}) is None


@pytest.mark.parametrize(
    ("score", "tier"),
    [(100, "excellent"), (90, "excellent"), (89.9, "great"), (80, "great"), (70, "good"), (0, "fair")],
)
def test_match_tier_thresholds(score: float, tier: str) -> None:
    assert match_tier(score) == tier


def test_match_tier_rejects_out_of_range() -> None:
    with pytest.raises(ValueError):
        match_tier(101)


def test_topics_from_overview_then_genres() -> None:
    assert topics(MATRIX["overview"], MATRIX["genre_ids"], GENRES) == ["War & Conflict"]
    assert topics("", [18, 28, 878], GENRES) == ["Drama", "Action"]
    many = "A detective and his family go on a journey through space with a robot friend."
    assert len(topics(many, [], GENRES)) == 3


def test_factors_combine_age_and_genre() -> None:
    today = date(2026, 1, 1)
    assert factors(MATRIX, today=today) == ["Nostalgic classic", "Action packed", "Science fiction"]
    assert factors({"id": 1, "title": "x", "release_date": "2024-05-01", "genre_ids": [10751]}, today=today) == [
        "Recent release",
        "Family friendly",
    ]
    # 16-24 years old gets no age label.
    assert factors(BREAKING_BAD, today=today) == ["Dramatic"]


def test_rating_controls_states() -> None:
    assert rating_controls(None).state == "unrated"
    assert rating_controls(None).can_skip is True
    rated = rating_controls(7.5)
    assert (rated.state, rated.slider_value, rated.can_skip) == ("rated", 7.5, False)
    assert rating_controls("skip").state == "skipped"
    assert rating_controls("not_interested").state == "not_interested"
    assert rating_controls("not_watched").slider_value == 0.0


@pytest.mark.parametrize("bad", [11, -0.5, "loved", True])
def test_parse_user_rating_rejects_invalid(bad) -> None:
    with pytest.raises(ValueError):
        parse_user_rating(bad)


def test_build_card() -> None:
    card = build_card(
        MATRIX,
        match_score=92,
        reasons=["Because you liked Inception"],
        genres=GENRES,
        today=date(2026, 1, 1),
    )
    assert card.media_type == "movie"
    assert card.title == "The Matrix"
    assert card.poster_url == "https://image.tmdb.org/t/p/w500/f89U3ADr1oiB1s9GkdPOEpXUk5H.jpg"
    assert card.genres == ["Action", "Science Fiction"]
    assert card.match_tier == "excellent"
    assert card.reasons == ["Because you liked Inception"]
    assert card.rating is not None and card.rating.state == "unrated"


def test_build_card_hides_score_and_reasons_when_asked() -> None:
    card = build_card(
        BREAKING_BAD,
        match_score=75,
        reasons=["x"],
        genres=GENRES,
        show_reasons=False,
        show_match_score=False,
    )
    assert card.media_type == "tv"
    assert card.match_score is None
    assert card.match_tier is None
    assert card.reasons == []
    assert card.poster_url.startswith("https://placehold.co/")


def test_trailer_prefers_localized_trailer() -> None:
    details = {
        "videos": {
            "results": [
                _video("clip", "Clip"),
                _video("teaser", "Teaser"),
                _video("en", "Trailer", "Official Trailer"),
                _video("tr", "Trailer", "Türkçe Altyazılı Fragman"),
            ]
        }
    }
    assert select_trailer_key(details, ("türkçe", "turkish")) == "tr"
    assert select_trailer_key(details) == "en"


def test_trailer_falls_back_through_teaser_and_clip() -> None:
    teaser = {"videos": {"results": [_video("c", "Clip"), _video("t", "Teaser")]}}
    assert select_trailer_key(teaser) == "t"

    clip = {"videos": {"results": [_video("c", "Clip"), _video("v", "Trailer", site="Vimeo")]}}
    assert select_trailer_key(clip) == "c"

    assert select_trailer_key({"videos": {"results": []}}) is None
    assert select_trailer_key({}) is None


def test_trailer_for_falls_back_to_tmdb_page() -> None:
    yt = trailer_for("movie", 603, {"videos": {"results": [_video("abc", "Trailer")]}})
    assert yt.url == "https://www.youtube.com/watch?v=abc"
    assert yt.source == "youtube"

    page = trailer_for("tv", 1396, {"videos": {"results": []}})
    assert page.url == "https://www.themoviedb.org/tv/1396"
    assert page.key is None
    assert page.source == "tmdb"


def test_cast_and_crew_extraction() -> None:
    details = {
        "credits": {
            "cast": [{"name": f"Actor {i}", "character": f"Role {i}"} for i in range(10)],
            "crew": [
                {"name": "Lana Wachowski", "job": "Director"},
                {"name": "Lilly Wachowski", "job": "Screenplay"},
                {"name": "Someone", "job": "Co-Writer"},
                {"name": "Bill Pope", "job": "Director of Photography"},
            ],
        },
        "created_by": [{"name": "Vince Gilligan"}],
    }
    cast, directors, writers = cast_and_crew(details)
    assert [c.name for c in cast] == [f"Actor {i}" for i in range(6)]
    assert cast[0].role == "Role 0"
    assert [d.name for d in directors] == ["Lana Wachowski"]
    assert [(w.name, w.role) for w in writers] == [
        ("Lilly Wachowski", "Screenplay"),
        ("Someone", "Co-Writer"),
        ("Vince Gilligan", "Creator"),
    ]


def test_keywords_for_movies_and_tv() -> None:
    assert keyword_names({"keywords": {"keywords": [{"id": 1, "name": "dystopia"}]}}) == ["dystopia"]
    assert keyword_names({"keywords": {"results": [{"id": 2, "name": "drug cartel"}]}}) == ["drug cartel"]
    assert keyword_names({}) == []


def test_build_media_details() -> None:
    details = build_media_details("movie", 603, {"credits": {}, "videos": {"results": []}})
    assert details.cast == []
    assert details.trailer.source == "tmdb"
