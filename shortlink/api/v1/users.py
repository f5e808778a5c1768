import logging
from datetime import timedelta

import jwt
from starlette.requests import Request
from starlette.routing import Route

from ..routing import pipeline_route
from ...context import AppContext
from ...errors import HTTPError
from ...middleware import authenticate, rate_limit, validate_payload
from ...pipeline import RequestState, json_response
from ...schemas import CreateUserSchema
from ...security import clear_access_cookie, create_access_token, set_access_cookie
from ...services import users as user_service
from ...services.rate_limiter import Limit

logger = logging.getLogger(__name__)

WINDOW = timedelta(minutes=2)
WRITE_LIMIT = Limit(rate=10, burst=5, period=WINDOW)
READ_LIMIT = Limit(rate=100, burst=50, period=WINDOW)


def user_routes(ctx: AppContext) -> list[Route]:
    settings = ctx.settings

    async def create_user(request: Request, state: RequestState):
        payload: CreateUserSchema = state.payload
        async with ctx.session_factory() as db:
            user = await user_service.sign_in(db, ctx.verifier, payload.id_token, payload.sign_in_with)

        try:
            token = create_access_token(user.id, settings)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.error(f"Failed to sign access token: {e}")
            return HTTPError.internal("unable to create jwt")

        response = json_response(201, user.to_dict())
        set_access_cookie(response, token, settings)
        return response

    async def get_user(request: Request, state: RequestState):
        async with ctx.session_factory() as db:
            user = await user_service.get_user(db, state.principal.user_id)
        return json_response(200, user.to_dict())

    async def delete_user(request: Request, state: RequestState):
        async with ctx.session_factory() as db:
            await user_service.delete_user(db, state.principal.user_id)
        return json_response(200)

    async def logout(request: Request, state: RequestState):
        response = json_response(200)
        clear_access_cookie(response, settings)
        return response

    def route(path, handler, methods, *middlewares):
        return pipeline_route(settings, path, handler, methods, *middlewares)

    return [
        route("/user/logout", logout, ["DELETE"],
              rate_limit(ctx.limiter, WRITE_LIMIT)),
        route("/user", create_user, ["POST"],
              rate_limit(ctx.limiter, WRITE_LIMIT),
              validate_payload(CreateUserSchema)),
        route("/user", get_user, ["GET"],
              rate_limit(ctx.limiter, READ_LIMIT),
              authenticate(settings)),
        route("/user", delete_user, ["DELETE"],
              rate_limit(ctx.limiter, READ_LIMIT),
              authenticate(settings)),
    ]
