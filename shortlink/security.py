"""Session tokens and the cookie that carries them."""
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from starlette.responses import Response

from .config import Settings
from .pipeline import Principal

ACCESS_TOKEN_COOKIE = "_access_token"
TOKEN_ISSUER = "shortlink"
TOKEN_AUDIENCE = "shortlink"
ALGORITHM = "HS256"


class TokenExpired(Exception):
    pass


class InvalidToken(Exception):
    pass


def create_access_token(user_id: uuid.UUID, settings: Settings, now: datetime = None) -> str:
    now = now or datetime.now(timezone.utc)
    claims = {
        "userId": str(user_id),
        "sub": "access token",
        "iss": TOKEN_ISSUER,
        "aud": [TOKEN_AUDIENCE],
        "iat": now,
        "nbf": now,
        "exp": now + timedelta(hours=settings.ACCESS_TOKEN_TTL_HOURS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> Principal:
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=TOKEN_AUDIENCE,
            issuer=TOKEN_ISSUER,
            options={"require": ["exp", "iat", "userId"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidToken() from exc

    try:
        user_id = uuid.UUID(claims["userId"])
    except (ValueError, TypeError, AttributeError) as exc:
        raise InvalidToken() from exc

    def _ts(name):
        value = claims.get(name)
        return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None

    return Principal(
        user_id=user_id,
        issued_at=_ts("iat"),
        expires_at=_ts("exp"),
        not_before=_ts("nbf"),
    )


def set_access_cookie(response: Response, token: str, settings: Settings):
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        token,
        max_age=settings.ACCESS_TOKEN_TTL_HOURS * 3600,
        expires=settings.ACCESS_TOKEN_TTL_HOURS * 3600,
        path="/",
        httponly=settings.is_production,
        secure=settings.is_production,
        samesite="strict",
    )


def clear_access_cookie(response: Response, settings: Settings):
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        "",
        max_age=0,
        expires=0,
        path="/",
        httponly=settings.is_production,
        secure=settings.is_production,
        samesite="strict",
    )
