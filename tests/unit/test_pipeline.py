import pytest
from httpx import AsyncClient, ASGITransport
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from shortlink.errors import ErrorKind, HTTPError
from shortlink.pipeline import RequestState, chain, exception_boundary, json_response


def recording_layer(name, calls):
    def middleware(next_handler):
        async def handler(request, state: RequestState):
            calls.append(f"{name}:in")
            result = await next_handler(request, state)
            calls.append(f"{name}:out")
            return result
        return handler
    return middleware


def failing_layer(error, calls):
    def middleware(next_handler):
        async def handler(request, state):
            calls.append("fail")
            return error
        return handler
    return middleware


async def _call(handler, method="GET", path="/thing"):
    app = Starlette(routes=[Route(path, exception_boundary(handler), methods=[method])])
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        return await client.request(method, path)


@pytest.mark.asyncio
async def test_first_middleware_is_outermost():
    calls = []

    async def terminal(request, state):
        calls.append("handler")
        return PlainTextResponse("ok")

    handler = chain(terminal, recording_layer("a", calls), recording_layer("b", calls), recording_layer("c", calls))
    response = await _call(handler)

    assert response.status_code == 200
    assert calls == ["a:in", "b:in", "c:in", "handler", "c:out", "b:out", "a:out"]


@pytest.mark.asyncio
async def test_chain_without_middlewares_is_the_handler():
    async def terminal(request, state):
        return PlainTextResponse("ok")

    assert chain(terminal) is terminal


@pytest.mark.asyncio
async def test_returned_error_short_circuits_inner_layers():
    calls = []

    async def terminal(request, state):
        calls.append("handler")
        return PlainTextResponse("ok")

    handler = chain(
        terminal,
        recording_layer("outer", calls),
        failing_layer(HTTPError.unauthenticated("nope"), calls),
        recording_layer("inner", calls),
    )
    response = await _call(handler, method="POST", path="/guarded")

    assert calls == ["outer:in", "fail", "outer:out"]
    assert response.status_code == 401
    body = response.json()
    assert body["message"] == "nope"
    assert body["statusCode"] == 401
    assert body["path"] == "/guarded"
    assert body["method"] == "POST"
    assert body["timestamp"]


@pytest.mark.asyncio
async def test_raised_error_renders_like_returned_error():
    async def terminal(request, state):
        raise HTTPError.conflict("alias already exist. try another one")

    response = await _call(terminal)

    assert response.status_code == 400
    assert response.json()["message"] == "alias already exist. try another one"


@pytest.mark.asyncio
async def test_unexpected_exception_is_generic_500():
    async def terminal(request, state):
        raise RuntimeError("database password is hunter2")

    response = await _call(terminal)

    assert response.status_code == 500
    assert response.json()["message"] == "internal server error"
    assert "hunter2" not in response.text


@pytest.mark.asyncio
async def test_layer_headers_reach_success_and_error_responses():
    def tagging(next_handler):
        async def handler(request, state):
            state.headers["X-Layer"] = "seen"
            return await next_handler(request, state)
        return handler

    async def ok(request, state):
        return json_response(200, {"a": 1})

    async def bad(request, state):
        return HTTPError.bad_input("bad")

    ok_response = await _call(chain(ok, tagging))
    bad_response = await _call(chain(bad, tagging))

    assert ok_response.json() == {"status_code": 200, "data": {"a": 1}}
    assert ok_response.headers["X-Layer"] == "seen"
    assert bad_response.status_code == 400
    assert bad_response.headers["X-Layer"] == "seen"


@pytest.mark.parametrize("kind, status", [
    (ErrorKind.BAD_INPUT, 400),
    (ErrorKind.UNAUTHENTICATED, 401),
    (ErrorKind.NOT_FOUND, 404),
    (ErrorKind.CONFLICT, 400),
    (ErrorKind.RATE_LIMITED, 429),
    (ErrorKind.INTERNAL, 500),
])
def test_error_kind_status(kind, status):
    assert HTTPError(kind, "x").status_code == status
