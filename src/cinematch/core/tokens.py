from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

from jose import JWTError, jwt

from cinematch.core.config import Settings

ALGORITHM = "HS256"

TokenType = Literal["access", "refresh"]


class TokenError(RuntimeError):
    pass


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    token_type: TokenType


def _secret(settings: Settings, token_type: TokenType) -> str:
    return settings.jwt_secret if token_type == "access" else settings.jwt_refresh_secret


def _encode(
    user_id: int,
    email: str,
    token_type: TokenType,
    settings: Settings,
    now: datetime,
) -> str:
    ttl = settings.access_token_ttl_s if token_type == "access" else settings.refresh_token_ttl_s
    payload = {
        "sub": str(user_id),
        "email": email,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    return jwt.encode(payload, _secret(settings, token_type), algorithm=ALGORITHM)


def issue_tokens(
    user_id: int, email: str, settings: Settings, *, now: datetime | None = None
) -> TokenPair:
    now = now or datetime.now(timezone.utc)
    return TokenPair(
        access_token=_encode(user_id, email, "access", settings, now),
        refresh_token=_encode(user_id, email, "refresh", settings, now),
    )


def decode_token(token: str, settings: Settings, *, token_type: TokenType = "access") -> TokenClaims:
    try:
        payload = jwt.decode(token, _secret(settings, token_type), algorithms=[ALGORITHM])
    except JWTError as e:
        raise TokenError("Invalid or expired token") from e

    if payload.get("type") != token_type:
        raise TokenError(f"Expected a {token_type} token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise TokenError("Token is missing a valid subject") from e

    return TokenClaims(user_id=user_id, email=str(payload.get("email") or ""), token_type=token_type)
