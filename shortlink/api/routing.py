from starlette.routing import Route

from ..config import Settings
from ..middleware import cors, validate_api_key
from ..pipeline import Handler, Middleware, chain, exception_boundary


def pipeline_route(settings: Settings, path: str, handler: Handler, methods: list[str], *middlewares: Middleware) -> Route:
    """Mount ``handler`` behind the layers every route shares.

    CORS and the client key check are always outermost, in that order;
    ``middlewares`` are stacked inside them, first listed outermost.
    """
    endpoint = exception_boundary(chain(
        handler,
        cors(settings),
        validate_api_key(settings),
        *middlewares,
    ))
    return Route(path, endpoint, methods=[*methods, "OPTIONS"])
