"""Composable request pipeline.

A handler is ``async (request, state) -> Response | HTTPError``; a middleware
takes a handler and returns a handler. ``chain`` stacks middlewares around a
terminal handler and ``exception_boundary`` adapts the result to a Starlette
endpoint, rendering any error signal that comes back out of the stack.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .errors import HTTPError
from .schemas import Validatable

logger = logging.getLogger(__name__)


@dataclass
class Principal:
    user_id: uuid.UUID
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    not_before: Optional[datetime] = None


@dataclass
class RequestState:
    """Per-request values threaded explicitly through the handler chain."""

    principal: Optional[Principal] = None
    payload: Optional[Validatable] = None
    # Headers set by layers, copied onto whatever response leaves the boundary
    headers: dict[str, str] = field(default_factory=dict)


Result = Union[Response, HTTPError]
Handler = Callable[[Request, RequestState], Awaitable[Result]]
Middleware = Callable[[Handler], Handler]
Endpoint = Callable[[Request], Awaitable[Response]]


def chain(handler: Handler, *middlewares: Middleware) -> Handler:
    """Wrap ``handler`` so that ``chain(h, m1, m2)`` behaves as ``m1(m2(h))``.

    The first middleware is the outermost one: it runs first on the way in and
    last on the way out.
    """
    for middleware in reversed(middlewares):
        handler = middleware(handler)
    return handler


def json_response(status_code: int, data: Any = None) -> JSONResponse:
    return JSONResponse({"status_code": status_code, "data": data}, status_code=status_code)


def error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    body = {
        "message": message,
        "statusCode": status_code,
        "path": request.url.path,
        "method": request.method,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(body, status_code=status_code)


def exception_boundary(handler: Handler) -> Endpoint:
    async def endpoint(request: Request) -> Response:
        state = RequestState()
        try:
            result = await handler(request, state)
        except HTTPError as exc:
            result = exc
        except Exception:
            logger.exception(
                "Unhandled error in request pipeline",
                extra={"path": request.url.path, "method": request.method},
            )
            result = HTTPError.internal()

        if isinstance(result, HTTPError):
            if result.status_code >= 500:
                logger.error(
                    f"{result.status_code} {result.message}",
                    extra={"path": request.url.path, "method": request.method},
                )
            response = error_response(request, result.status_code, result.message)
        else:
            response = result

        for name, value in state.headers.items():
            response.headers.setdefault(name, value)
        return response

    return endpoint


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    # Unmatched routes and methods get the same body as pipeline errors
    messages = {404: "resource not found", 405: "method not allowed"}
    message = messages.get(exc.status_code, str(exc.detail).lower())
    return error_response(request, exc.status_code, message)
