import pytest
from aiohttp import test_utils, web

from xgateway.config import EndpointConfig, ServiceConfig
from xgateway.proxy.core import Response
from xgateway.proxy.factory import ProxyFactory
from xgateway.router.engine import EngineRouter, EngineRouterFactory, new_request


class RecordingLogger:
    def __init__(self):
        self.records = []

    def debug(self, *args):
        self.records.append(("debug", args))

    def info(self, *args):
        self.records.append(("info", args))

    def warning(self, *args):
        self.records.append(("warning", args))

    def error(self, *args):
        self.records.append(("error", args))

    def critical(self, *args):
        self.records.append(("critical", args))


def echo_backend(complete=True):
    def factory(remote):
        async def proxy(request):
            return Response({"path": request.path, "url": request.url}, complete)

        return proxy

    return factory


def failing_backend(remote):
    async def proxy(request):
        raise RuntimeError("boom")

    return proxy


def make_config(endpoints, **extra):
    data = {"version": 1, "timeout": "1s", "host": ["http://backend.local"], "endpoints": endpoints}
    data.update(extra)
    cfg = ServiceConfig.from_dict(data)
    cfg.init()
    return cfg


def make_app(cfg, backend_factory=None, logger=None):
    logger = logger or RecordingLogger()
    factory = ProxyFactory(backend_factory or echo_backend(), logger)
    return EngineRouter(factory, logger).build_app(cfg)


USERS = [{"endpoint": "/users/{id}", "backend": [{"url_pattern": "/u/{id}"}]}]


@pytest.mark.asyncio
async def test_get_with_cache_ttl_returns_data():
    app = make_app(make_config(USERS, cache_ttl="30s"))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.get("/users/42")
        body = await resp.json()

    assert resp.status == 200
    assert body == {"path": "/u/42", "url": "http://backend.local/u/42"}
    assert resp.headers["Cache-Control"] == "public, max-age=30"
    assert resp.headers["X_X"] == "Version undefined"


@pytest.mark.asyncio
async def test_without_cache_ttl_body_is_empty():
    app = make_app(make_config(USERS))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.get("/users/42")
        body = await resp.json()

    assert resp.status == 200
    assert body == {}
    assert "Cache-Control" not in resp.headers


@pytest.mark.asyncio
async def test_incomplete_response_body_is_empty():
    app = make_app(make_config(USERS, cache_ttl="30s"), echo_backend(complete=False))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.get("/users/42")
        body = await resp.json()

    assert body == {}


@pytest.mark.asyncio
async def test_failing_proxy_answers_500():
    app = make_app(make_config(USERS, cache_ttl="30s"), failing_backend)
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.get("/users/42")

    assert resp.status == 500
    assert resp.headers["X_X"] == "Version undefined"


@pytest.mark.asyncio
async def test_hyphenated_param_is_forwarded():
    endpoints = [{"endpoint": "/x/{supu-5t6}", "backend": [{"url_pattern": "/y/{supu-5t6}"}]}]
    app = make_app(make_config(endpoints, cache_ttl="30s"))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.get("/x/abc")
        body = await resp.json()

    assert body["path"] == "/y/abc"


@pytest.mark.asyncio
async def test_trailing_slash_is_redirected():
    app = make_app(make_config(USERS, cache_ttl="30s"))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.get("/users/42/")
        body = await resp.json()

    assert resp.status == 200
    assert body["path"] == "/u/42"


@pytest.mark.asyncio
async def test_post_with_many_backends_is_skipped():
    logger = RecordingLogger()
    endpoints = [
        {"endpoint": "/submit", "method": "post", "backend": [{"url_pattern": "/a"}, {"url_pattern": "/b"}]}
    ]
    app = make_app(make_config(endpoints), logger=logger)
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.post("/submit", data=b"x")

    assert resp.status == 404
    assert ("error", ("POST endpoints must have a single backend! Ignoring", "/submit")) in logger.records


@pytest.mark.asyncio
async def test_put_with_single_backend_is_served():
    endpoints = [{"endpoint": "/submit", "method": "put", "backend": [{"url_pattern": "/a"}]}]
    app = make_app(make_config(endpoints))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.put("/submit", data=b"x")
        body = await resp.json()

    assert resp.status == 200
    assert body == {}


def test_unsupported_method_is_logged():
    logger = RecordingLogger()
    endpoints = [{"endpoint": "/gone", "method": "delete", "backend": [{"url_pattern": "/a"}]}]
    make_app(make_config(endpoints), logger=logger)
    assert ("error", ("Unsupported method", "DELETE")) in logger.records


def test_factory_error_is_logged():
    logger = RecordingLogger()
    cfg = ServiceConfig(endpoints=[EndpointConfig(endpoint="/empty", method="GET")])
    make_app(cfg, logger=logger)
    assert logger.records == [
        ("error", ("calling the ProxyFactory", "all endpoints must have at least one backend"))
    ]


@pytest.mark.asyncio
async def test_debug_route_answers_pong():
    logger = RecordingLogger()
    app = make_app(make_config(USERS, debug=True), logger=logger)
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.post("/__debug/foo", data=b"payload")
        body = await resp.json()

    assert body == {"message": "pong"}
    assert ("debug", ("Debug enabled",)) in logger.records
    assert ("debug", ("Body:", "payload")) in logger.records


@pytest.mark.asyncio
async def test_debug_route_absent_without_debug():
    app = make_app(make_config(USERS))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.get("/__debug/foo")

    assert resp.status == 404


@pytest.mark.asyncio
async def test_new_request_collects_request_fields():
    async def handler(request):
        built = await new_request(request, ["a", "b"])
        return web.json_response(
            {
                "method": built.method,
                "params": built.params,
                "query": built.query,
                "headers": built.headers,
                "body": built.body.decode(),
            }
        )

    app = web.Application()
    app.router.add_post("/items/{id}", handler)
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.post(
            "/items/9?a=1&b=&c=3",
            data=b"{}",
            headers={"Content-Type": "application/json", "X-Forwarded-For": "10.0.0.1, 10.0.0.2"},
        )
        body = await resp.json()

    assert body["method"] == "POST"
    assert body["params"] == {"Id": "9"}
    assert body["query"] == {"a": ["1"]}
    assert body["headers"] == {
        "X-Forwarded-For": ["10.0.0.1"],
        "User-Agent": ["X_X Version undefined"],
        "Content-Type": ["application/json"],
    }
    assert body["body"] == "{}"


def test_router_factory_builds_router_with_its_parts():
    logger = RecordingLogger()
    proxy_factory = ProxyFactory(echo_backend(), logger)
    router = EngineRouterFactory(proxy_factory, logger).new()
    assert router.proxy_factory is proxy_factory
    assert router.logger is logger