from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import time

# Metrics definitions
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

LINKS_CREATED_TOTAL = Counter("links_created_total", "Total links created", ["kind"])
ALIAS_COLLISIONS_TOTAL = Counter("alias_collisions_total", "Generated alias candidates that were already taken")
REDIRECT_TOTAL = Counter("redirect_total", "Total redirects")
REDIRECT_MISS_TOTAL = Counter("redirect_miss_total", "Redirects for unknown aliases")
RATE_LIMITED_TOTAL = Counter("rate_limited_total", "Total rate limited requests")


KNOWN_PATHS = frozenset({
    "/health",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/url/redirect",
    "/url/check_alias",
    "/url/guest",
    "/url/create_url",
    "/url/get_urls",
    "/url/delete_urls",
    "/user",
    "/user/logout",
})
OTHER_PATH = "other"


def metric_path(path: str) -> str:
    # Collapse per-link ids and unrouted paths to keep label cardinality bounded
    if path.startswith("/url/get_url/"):
        return "/url/get_url/{urlId}"
    if path.startswith("/url/delete_url/"):
        return "/url/delete_url/{urlId}"
    if path in KNOWN_PATHS:
        return path
    return OTHER_PATH


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        path = metric_path(request.url.path)

        HTTP_REQUESTS_TOTAL.labels(method=request.method, path=path, status=str(response.status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=request.method, path=path).observe(process_time)

        return response


def metrics_endpoint(request: Request):
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
