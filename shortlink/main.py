from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.v1.links import url_routes
from .api.v1.users import user_routes
from .config import Settings, get_settings
from .context import AppContext
from .database import build_engine, build_session_factory, init_models
from .logging_config import setup_logging
from .observability import PrometheusMiddleware, metrics_endpoint
from .pipeline import http_exception_handler
from .redis import redis_client
from .services.identity import GoogleIdentityVerifier, IdentityVerifier
from .services.rate_limiter import RateLimiter, RedisRateLimiter


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    limiter: Optional[RateLimiter] = None,
    verifier: Optional[IdentityVerifier] = None,
) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or build_engine(settings)
    uses_redis = limiter is None

    ctx = AppContext(
        settings=settings,
        session_factory=build_session_factory(engine),
        limiter=limiter or RedisRateLimiter(redis_client),
        verifier=verifier or GoogleIdentityVerifier(settings.GOOGLE_CLIENT_ID),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup logic
        if uses_redis:
            await redis_client.connect(settings)
        await init_models(engine)
        yield
        # Shutdown logic
        if uses_redis:
            await redis_client.close()
        await engine.dispose()

    app = FastAPI(
        title="Shortlink",
        description="Short link service",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
    )
    app.state.context = ctx

    app.add_middleware(PrometheusMiddleware)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.add_route("/metrics", metrics_endpoint)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.router.routes.extend(url_routes(ctx))
    app.router.routes.extend(user_routes(ctx))

    return app


setup_logging()

app = create_app()
