"""Pipeline layers.

Each factory here returns a ``Middleware`` (handler -> handler). Layers never
render error bodies: they return an ``HTTPError`` and the exception boundary
renders it.
"""
import logging
import secrets
from typing import Type

import redis.asyncio as redis
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import Response

from .config import Settings
from .errors import HTTPError
from .observability import RATE_LIMITED_TOTAL
from .pipeline import Handler, Middleware, RequestState
from .schemas import StrictPayload
from .security import ACCESS_TOKEN_COOKIE, InvalidToken, TokenExpired, decode_access_token
from .services.rate_limiter import Limit, RateLimiter, rate_limit_key

logger = logging.getLogger(__name__)

MAX_PAYLOAD_SIZE = 10_485_760  # 10 MiB

CORS_ALLOW_METHODS = "POST, GET, OPTIONS, PUT, PATCH, DELETE"
CORS_ALLOW_HEADERS = "Accept, Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization"


def cors(settings: Settings) -> Middleware:
    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, state: RequestState):
            state.headers.update({
                "Access-Control-Allow-Origin": settings.CORS_ORIGIN,
                "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
                "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
                "Access-Control-Allow-Credentials": "true",
            })
            # Preflight never reaches the inner layers
            if request.method == "OPTIONS":
                return Response(status_code=200)
            return await next_handler(request, state)
        return handler
    return middleware


def validate_api_key(settings: Settings) -> Middleware:
    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, state: RequestState):
            header = request.headers.get("Authorization")
            if not header:
                return HTTPError.unauthenticated("authorization api key required")

            parts = header.split(" ")
            if len(parts) < 2:
                return HTTPError.bad_input("malformed client authorization header")

            if not secrets.compare_digest(parts[1], settings.CLIENT_KEY):
                return HTTPError.unauthenticated("invalid client authorization token")

            return await next_handler(request, state)
        return handler
    return middleware


def rate_limit(limiter: RateLimiter, limit: Limit) -> Middleware:
    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, state: RequestState):
            key = rate_limit_key(request)
            try:
                decision = await limiter.allow(key, limit)
            except redis.RedisError as e:
                logger.error(f"Rate limiter error: {e}")
                return HTTPError.internal()

            state.headers["RateLimit-Remaining"] = str(decision.remaining)
            if not decision.allowed:
                state.headers["RateLimit-RetryAfter"] = str(int(decision.retry_after.total_seconds()))
                RATE_LIMITED_TOTAL.inc()
                return HTTPError.rate_limited("too many request")

            return await next_handler(request, state)
        return handler
    return middleware


async def _read_body(request: Request, max_size: int) -> bytes:
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_size:
            raise HTTPError.bad_input("invalid payload")
    return bytes(body)


def validate_payload(factory: Type[StrictPayload], max_size: int = MAX_PAYLOAD_SIZE) -> Middleware:
    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, state: RequestState):
            try:
                body = await _read_body(request, max_size)
            except HTTPError as err:
                return err

            try:
                payload = factory.model_validate_json(body)
            except ValidationError:
                return HTTPError.bad_input("invalid payload")

            err = payload.validate_payload()
            if err is not None:
                return HTTPError.bad_input(f"validation error: {err.message}")

            state.payload = payload
            return await next_handler(request, state)
        return handler
    return middleware


def authenticate(settings: Settings) -> Middleware:
    def middleware(next_handler: Handler) -> Handler:
        async def handler(request: Request, state: RequestState):
            if ACCESS_TOKEN_COOKIE not in request.cookies:
                return HTTPError.unauthenticated("no authentication cookie provided")

            # Logout leaves the cookie behind with an empty value and a past expiry
            token = request.cookies[ACCESS_TOKEN_COOKIE]
            if not token:
                return HTTPError.unauthenticated("cookie expired")

            try:
                state.principal = decode_access_token(token, settings)
            except TokenExpired:
                return HTTPError.unauthenticated("access token expired")
            except InvalidToken:
                return HTTPError.unauthenticated("invalid authentication token")

            return await next_handler(request, state)
        return handler
    return middleware
