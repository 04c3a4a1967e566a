from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from cinematch.api.errors import ApiError
from cinematch.core.config import Settings
from cinematch.core.tokens import TokenError, decode_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    email: str


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """Attach the authenticated user (or None) to `request.state.user`.

    Never rejects a request by itself; endpoints decide whether a user is required.
    """

    def __init__(self, app, *, settings: Settings) -> None:
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        user: AuthenticatedUser | None = None
        token = bearer_token(request)
        if token:
            try:
                claims = decode_token(token, self._settings, token_type="access")
                user = AuthenticatedUser(id=claims.user_id, email=claims.email)
            except TokenError as e:
                logger.info("Rejected bearer token on %s: %s", request.url.path, e)

        request.state.user = user
        return await call_next(request)


def current_user(request: Request) -> AuthenticatedUser | None:
    return getattr(request.state, "user", None)


def require_user(request: Request) -> AuthenticatedUser:
    user = current_user(request)
    if user is None:
        raise ApiError(401, "Authentication required")
    return user
