from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

RatingActionField = Literal["not_watched", "not_interested", "skip"]
MediaTypeField = Literal["movie", "tv"]

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class ApiModel(BaseModel):
    # The frontend speaks camelCase; accept snake_case too.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(ApiModel):
    email: str = Field(max_length=255, pattern=_EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=128)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


class LoginRequest(ApiModel):
    email: str
    password: str


class RefreshRequest(ApiModel):
    refresh_token: str


class UserOut(ApiModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime | None = None


class TokensOut(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"


class AuthResponse(ApiModel):
    success: bool = True
    user: UserOut
    tokens: TokensOut


class TokensResponse(ApiModel):
    success: bool = True
    tokens: TokensOut


class RatingRequest(ApiModel):
    movie_id: int = Field(gt=0)
    movie_title: str | None = Field(default=None, max_length=500)
    media_type: MediaTypeField = "movie"
    rating: float | None = Field(default=None, ge=0, le=10)
    action: RatingActionField | None = None

    @model_validator(mode="after")
    def _rating_xor_action(self) -> RatingRequest:
        if (self.rating is None) == (self.action is None):
            raise ValueError("provide exactly one of rating or action")
        return self


class RatingOut(ApiModel):
    movie_id: int
    media_type: str
    movie_title: str | None = None
    rating: float | None = None
    action: str | None = None
    updated_at: datetime | None = None


class OnboardingOut(ApiModel):
    rating_count: int = Field(ge=0)
    remaining: int = Field(ge=0)
    complete: bool
    threshold: int


class RatingResponse(ApiModel):
    success: bool = True
    rating: RatingOut
    onboarding: OnboardingOut


class RatingsListResponse(ApiModel):
    success: bool = True
    ratings: list[RatingOut]


class OnboardingResponse(OnboardingOut):
    success: bool = True


class ProfileOut(UserOut):
    rating_count: int = Field(ge=0)


class ProfileResponse(ApiModel):
    success: bool = True
    profile: ProfileOut


class MediaItemIn(BaseModel):
    # Raw TMDB list item; snake_case as TMDB returns it.
    model_config = ConfigDict(extra="allow")

    id: int
    media_type: MediaTypeField | None = None
    title: str | None = None
    original_title: str | None = None
    name: str | None = None
    original_name: str | None = None
    overview: str | None = None
    poster_path: str | None = None
    release_date: str | None = None
    first_air_date: str | None = None
    genre_ids: list[int] = Field(default_factory=list)
    vote_average: float | None = None


class GenreIn(BaseModel):
    id: int
    name: str


class RecommendationIn(ApiModel):
    movie: MediaItemIn
    match_score: float = Field(ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)


class CardRequest(ApiModel):
    recommendation: RecommendationIn
    genres: list[GenreIn] = Field(default_factory=list)
    user_rating: float | RatingActionField | None = None
    show_reasons: bool = True
    show_match_score: bool = True


class RatingControlsOut(ApiModel):
    state: str
    slider_value: float
    can_skip: bool
    actions: list[str]


class CardOut(ApiModel):
    media_id: int
    media_type: str
    title: str
    poster_url: str
    release_date: str | None = None
    release_year: int | None = None
    overview: str
    genres: list[str]
    topics: list[str]
    factors: list[str]
    match_score: float | None = None
    match_tier: str | None = None
    reasons: list[str]
    rating: RatingControlsOut


class CardResponse(ApiModel):
    success: bool = True
    card: CardOut


class PersonOut(ApiModel):
    name: str
    role: str | None = None
    profile_path: str | None = None


class TrailerOut(ApiModel):
    url: str
    key: str | None = None
    source: str


class MediaDetailsResponse(ApiModel):
    success: bool = True
    state: str
    media_type: str
    media_id: int
    cast: list[PersonOut] = Field(default_factory=list)
    directors: list[PersonOut] = Field(default_factory=list)
    writers: list[PersonOut] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    trailer: TrailerOut | None = None
