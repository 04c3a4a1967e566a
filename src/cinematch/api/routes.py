from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, Path, Request
from fastapi.responses import JSONResponse

from cinematch.api.auth import AuthenticatedUser, require_user
from cinematch.api.errors import ApiError
from cinematch.api.onboarding import require_onboarding_complete
from cinematch.core.database import Database, DatabaseUnavailable
from cinematch.core.detail_cache import DetailState
from cinematch.core.ratings import (
    ONBOARDING_THRESHOLD,
    OnboardingStatus,
    StoredRating,
    count_user_ratings,
    list_user_ratings,
    onboarding_status,
    save_rating,
)
from cinematch.core.recommendation_card import build_card, build_media_details
from cinematch.core.schemas import (
    AuthResponse,
    CardRequest,
    CardResponse,
    LoginRequest,
    MediaDetailsResponse,
    OnboardingOut,
    OnboardingResponse,
    ProfileResponse,
    RatingOut,
    RatingRequest,
    RatingResponse,
    RatingsListResponse,
    RefreshRequest,
    RegisterRequest,
    TokensResponse,
)
from cinematch.core.tmdb import TMDBError, TMDBNotFound, fetch_media_details
from cinematch.core.tokens import TokenError, decode_token, issue_tokens
from cinematch.core.users import User, authenticate, create_user, get_user_by_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _db(request: Request) -> Database:
    return request.app.state.db


def _require_db(request: Request) -> Database:
    db = _db(request)
    if not db.is_connected:
        raise ApiError(503, "Database not available")
    return db


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "created_at": user.created_at,
    }


def _auth_response(request: Request, user: User) -> AuthResponse:
    tokens = issue_tokens(user.id, user.email, request.app.state.settings)
    return AuthResponse(
        user=_user_payload(user),
        tokens={"access_token": tokens.access_token, "refresh_token": tokens.refresh_token},
    )


def _onboarding_payload(status: OnboardingStatus) -> OnboardingOut:
    return OnboardingOut(
        rating_count=status.rating_count,
        remaining=status.remaining,
        complete=status.complete,
        threshold=ONBOARDING_THRESHOLD,
    )


def _rating_payload(rating: StoredRating) -> RatingOut:
    return RatingOut(**asdict(rating))


@router.get("/health")
def health(request: Request) -> dict[str, str]:
    return {
        "status": "ok",
        "database": "connected" if _db(request).is_connected else "unavailable",
    }


@router.post("/api/auth/register", response_model=AuthResponse, status_code=201)
def register(req: RegisterRequest, request: Request) -> AuthResponse:
    db = _require_db(request)
    try:
        user = create_user(
            db,
            email=req.email,
            password=req.password,
            first_name=req.first_name,
            last_name=req.last_name,
        )
    except DatabaseUnavailable as e:
        raise ApiError(503, "Database not available") from e
    if user is None:
        raise ApiError(409, "An account with this email already exists")

    logger.info("Registered user %s", user.id)
    return _auth_response(request, user)


@router.post("/api/auth/login", response_model=AuthResponse)
def login(req: LoginRequest, request: Request) -> AuthResponse:
    db = _require_db(request)
    user = authenticate(db, req.email, req.password)
    if user is None:
        raise ApiError(401, "Invalid email or password")
    return _auth_response(request, user)


@router.post("/api/auth/refresh", response_model=TokensResponse)
def refresh(req: RefreshRequest, request: Request) -> TokensResponse:
    settings = request.app.state.settings
    try:
        claims = decode_token(req.refresh_token, settings, token_type="refresh")
    except TokenError as e:
        raise ApiError(401, str(e)) from e

    tokens = issue_tokens(claims.user_id, claims.email, settings)
    return TokensResponse(
        tokens={"access_token": tokens.access_token, "refresh_token": tokens.refresh_token}
    )


@router.post("/api/user/ratings", response_model=RatingResponse)
def rate(
    req: RatingRequest,
    request: Request,
    user: AuthenticatedUser = Depends(require_user),
) -> RatingResponse:
    # Deliberately not gated: users complete onboarding through this endpoint.
    db = _db(request)
    stored = save_rating(
        db,
        user.id,
        movie_id=req.movie_id,
        media_type=req.media_type,
        movie_title=req.movie_title,
        rating=req.rating,
        action=req.action,
    )
    if stored is None:
        raise ApiError(503, "Database not available")

    status = onboarding_status(count_user_ratings(db, user.id))
    return RatingResponse(rating=_rating_payload(stored), onboarding=_onboarding_payload(status))


@router.get("/api/user/ratings", response_model=RatingsListResponse)
def my_ratings(
    request: Request, user: AuthenticatedUser = Depends(require_user)
) -> RatingsListResponse:
    ratings = list_user_ratings(_db(request), user.id)
    return RatingsListResponse(ratings=[_rating_payload(r) for r in ratings])


@router.get("/api/user/onboarding", response_model=OnboardingResponse)
def onboarding(
    request: Request, user: AuthenticatedUser = Depends(require_user)
) -> OnboardingResponse:
    status = onboarding_status(count_user_ratings(_db(request), user.id))
    return OnboardingResponse(**_onboarding_payload(status).model_dump())


@router.get("/api/user/profile", response_model=ProfileResponse)
def profile(
    request: Request,
    user: AuthenticatedUser = Depends(require_onboarding_complete),
) -> ProfileResponse:
    stored = get_user_by_id(_db(request), user.id)
    if stored is None:
        raise ApiError(404, "User not found")

    status: OnboardingStatus = request.state.onboarding
    return ProfileResponse(
        profile={**_user_payload(stored), "rating_count": status.rating_count},
    )


@router.post("/api/recommendations/card", response_model=CardResponse)
def recommendation_card(req: CardRequest) -> CardResponse:
    rec = req.recommendation
    card = build_card(
        rec.movie.model_dump(exclude_none=True),
        match_score=rec.match_score,
        reasons=rec.reasons,
        genres={g.id: g.name for g in req.genres},
        user_rating=req.user_rating,
        show_reasons=req.show_reasons,
        show_match_score=req.show_match_score,
    )
    return CardResponse(card=asdict(card))


@router.get("/api/media/{media_type}/{media_id}/details", response_model=MediaDetailsResponse)
def media_details(
    request: Request,
    media_type: str = Path(pattern="^(movie|tv)$"),
    media_id: int = Path(gt=0),
):
    settings = request.app.state.settings
    cache = request.app.state.detail_cache

    def _load() -> dict:
        return fetch_media_details(
            media_type,
            media_id,
            api_key=settings.tmdb_api_key,
            language=settings.tmdb_language,
        )

    try:
        entry = cache.get_or_fetch((media_type, media_id), _load)
    except TMDBNotFound as e:
        raise ApiError(404, str(e)) from e
    except TMDBError as e:
        logger.warning("Detail fetch failed for %s/%s: %s", media_type, media_id, e)
        raise ApiError(502, str(e)) from e

    if entry.state is DetailState.LOADING:
        return JSONResponse(
            status_code=202,
            content={
                "success": True,
                "state": entry.state.value,
                "mediaType": media_type,
                "mediaId": media_id,
            },
        )

    details = build_media_details(media_type, media_id, entry.value, settings.trailer_terms)
    return MediaDetailsResponse(state=entry.state.value, **asdict(details))
