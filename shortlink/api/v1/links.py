import asyncio
import logging
import uuid
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request
from starlette.responses import RedirectResponse
from starlette.routing import Route

from ..routing import pipeline_route
from ... import crud
from ...context import AppContext
from ...errors import HTTPError
from ...middleware import authenticate, rate_limit, validate_payload
from ...observability import REDIRECT_MISS_TOTAL, REDIRECT_TOTAL
from ...pipeline import RequestState, json_response
from ...schemas import CheckAliasSchema, CreateUrlSchema
from ...services import alias as alias_service
from ...services.rate_limiter import Limit

logger = logging.getLogger(__name__)

MAX_LIMIT = 50
NEWEST_FIRST = "-1"
OLDEST_FIRST = "1"

WINDOW = timedelta(minutes=2)
WRITE_LIMIT = Limit(rate=10, burst=5, period=WINDOW)
READ_LIMIT = Limit(rate=100, burst=50, period=WINDOW)
BULK_READ_LIMIT = Limit(rate=1000, burst=500, period=WINDOW)
BULK_DELETE_LIMIT = Limit(rate=10, burst=50, period=WINDOW)


def _parse_uuid(value: str, message: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError):
        raise HTTPError.bad_input(message)


def _parse_int(value, default: int) -> int:
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def url_routes(ctx: AppContext) -> list[Route]:
    settings = ctx.settings

    async def create_url(request: Request, state: RequestState):
        payload: CreateUrlSchema = state.payload
        owner_id = state.principal.user_id if state.principal else None
        async with ctx.session_factory() as db:
            link = await alias_service.allocate_link(db, payload.original_url, payload.alias, owner_id)
        return json_response(201, link.to_dict())

    async def check_alias(request: Request, state: RequestState):
        payload: CheckAliasSchema = state.payload
        async with ctx.session_factory() as db:
            await alias_service.check_alias(db, payload.alias)
        return json_response(200)

    async def get_url(request: Request, state: RequestState):
        url_id = _parse_uuid(request.path_params.get("urlId"), "invalid url id")
        async with ctx.session_factory() as db:
            try:
                link = await crud.get_owned_link(db, url_id, state.principal.user_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to get url: {e}")
                return HTTPError.internal("unable to get url")
        if link is None:
            return HTTPError.not_found("url not found")
        return json_response(200, link.to_dict())

    async def get_urls(request: Request, state: RequestState):
        params = request.query_params
        newest_first = params.get("date_sort", NEWEST_FIRST) != OLDEST_FIRST
        limit = min(max(_parse_int(params.get("limit"), MAX_LIMIT), 1), MAX_LIMIT)
        skip = max(_parse_int(params.get("skip"), 0), 0)

        async with ctx.session_factory() as db:
            try:
                links, total = await crud.search_owned_links(
                    db,
                    state.principal.user_id,
                    params.get("query", ""),
                    newest_first,
                    limit,
                    skip,
                )
            except (SQLAlchemyError, asyncio.TimeoutError) as e:
                logger.error(f"Failed to fetch urls: {e}")
                return HTTPError.internal("unable to fetch urls")
        return json_response(200, {"data": [link.to_dict() for link in links], "total": total})

    async def delete_url(request: Request, state: RequestState):
        url_id = _parse_uuid(request.path_params.get("urlId"), "invalid url id")
        async with ctx.session_factory() as db:
            try:
                await crud.delete_owned_link(db, url_id, state.principal.user_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to delete url: {e}")
                return HTTPError.internal("unable to delete url")
        return json_response(200)

    async def delete_urls(request: Request, state: RequestState):
        raw = request.query_params.get("url", "")
        if not raw:
            return HTTPError.bad_input("one url id must be provided")
        url_ids = [_parse_uuid(value, "invalid id format") for value in raw.split(",")]

        async with ctx.session_factory() as db:
            try:
                await crud.delete_owned_links(db, url_ids, state.principal.user_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to delete urls: {e}")
                return HTTPError.internal("unable to delete urls")
        return json_response(200)

    async def redirect(request: Request, state: RequestState):
        alias = request.query_params.get("alias", "")
        if not alias:
            return HTTPError.bad_input("no alias found")

        async with ctx.session_factory() as db:
            try:
                target = await alias_service.redirect_target(db, alias)
            except HTTPError:
                REDIRECT_MISS_TOTAL.inc()
                raise
        REDIRECT_TOTAL.inc()
        # Temporary so clients do not cache a mapping that may be deleted later
        return RedirectResponse(url=target, status_code=307)

    def route(path, handler, methods, *middlewares):
        return pipeline_route(settings, path, handler, methods, *middlewares)

    return [
        route("/url/redirect", redirect, ["GET"],
              rate_limit(ctx.limiter, BULK_READ_LIMIT)),
        route("/url/check_alias", check_alias, ["POST"],
              rate_limit(ctx.limiter, WRITE_LIMIT),
              validate_payload(CheckAliasSchema)),
        route("/url/guest", create_url, ["POST"],
              rate_limit(ctx.limiter, WRITE_LIMIT),
              validate_payload(CreateUrlSchema)),
        route("/url/get_url/{urlId}", get_url, ["GET"],
              rate_limit(ctx.limiter, READ_LIMIT),
              authenticate(settings)),
        route("/url/delete_url/{urlId}", delete_url, ["DELETE"],
              rate_limit(ctx.limiter, READ_LIMIT),
              authenticate(settings)),
        route("/url/create_url", create_url, ["POST"],
              rate_limit(ctx.limiter, WRITE_LIMIT),
              validate_payload(CreateUrlSchema),
              authenticate(settings)),
        route("/url/get_urls", get_urls, ["GET"],
              rate_limit(ctx.limiter, BULK_READ_LIMIT),
              authenticate(settings)),
        route("/url/delete_urls", delete_urls, ["DELETE"],
              rate_limit(ctx.limiter, BULK_DELETE_LIMIT),
              authenticate(settings)),
    ]
