from __future__ import annotations

import logging

from fastapi import Request

from cinematch.api.auth import AuthenticatedUser, current_user
from cinematch.api.errors import ApiError
from cinematch.core.ratings import ONBOARDING_THRESHOLD, count_user_ratings, onboarding_status

logger = logging.getLogger(__name__)

ONBOARDING_INCOMPLETE_MESSAGE = (
    f"Onboarding incomplete. Please rate at least {ONBOARDING_THRESHOLD} movies."
)


def require_onboarding_complete(request: Request) -> AuthenticatedUser:
    """Dependency gating routes on the user having rated enough titles.

    Expects the bearer middleware to have attached the user already. The count is
    recomputed on every request; the resulting status is left on
    `request.state.onboarding` for the handler.
    """

    user = current_user(request)
    if user is None:
        raise ApiError(401, "Authentication required")

    try:
        rating_count = count_user_ratings(request.app.state.db, user.id)
    except Exception:
        logger.exception("Onboarding check failed for user %r", user.id)
        raise ApiError(500, "Onboarding check failed") from None

    status = onboarding_status(rating_count)
    request.state.onboarding = status

    if not status.complete:
        logger.info(
            "Onboarding incomplete for user %s (%d/%d ratings)",
            user.id,
            rating_count,
            ONBOARDING_THRESHOLD,
        )
        raise ApiError(403, ONBOARDING_INCOMPLETE_MESSAGE, remaining=status.remaining)

    return user
