"""HTTP router serving the configured endpoints through their proxy stacks."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from aiohttp import web

from ..config import EndpointConfig, ServiceConfig, _title
from ..proxy.core import Proxy, ProxyError
from ..proxy.request import Request

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_HEADERS_TO_SEND = ("Content-Type",)
_USER_AGENT = "X_X Version undefined"
_VERSION_HEADER = "X_X"
_VERSION_VALUE = "Version undefined"
_ROUTE_PARAM = re.compile(r"/:([^/]+)")
_PARAM_PREFIX = "_p"
# The endpoint deadline reads the configured duration as a count of milliseconds.
_ENDPOINT_TIMEOUT_SCALE = 1_000_000


def _encode_param(name: str) -> str:
    return _PARAM_PREFIX + name.encode().hex()


def _decode_param(key: str) -> str:
    if key.startswith(_PARAM_PREFIX):
        try:
            return bytes.fromhex(key[len(_PARAM_PREFIX):]).decode()
        except ValueError:
            pass
    return key


def _route_path(endpoint: str) -> str:
    return _ROUTE_PARAM.sub(lambda m: "/{" + _encode_param(m.group(1)) + "}", endpoint)


def _client_ip(request: web.Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    real_ip = request.headers.get("X-Real-Ip", "").strip()
    if real_ip:
        return real_ip
    return request.remote or ""


def _params(request: web.Request) -> dict[str, str]:
    return {_decode_param(key): value for key, value in request.match_info.items()}


def debug_handler(logger: Any) -> Handler:
    """Build a handler that logs the whole request and answers with a pong."""

    async def handler(request: web.Request) -> web.StreamResponse:
        logger.debug("Method:", request.method)
        logger.debug("URL:", request.path_qs)
        logger.debug("Query:", dict(request.query))
        logger.debug("Params:", _params(request))
        logger.debug("Headers:", dict(request.headers))
        body = await request.read()
        logger.debug("Body:", body.decode("utf-8", errors="replace"))
        return web.json_response({"message": "pong"})

    return handler


def endpoint_handler(cfg: EndpointConfig, proxy: Proxy) -> Handler:
    """Build the handler that runs ``proxy`` for each request to ``cfg``."""
    endpoint_timeout = cfg.timeout.total_seconds() * _ENDPOINT_TIMEOUT_SCALE
    cache_seconds = cfg.cache_ttl.total_seconds()

    async def handler(request: web.Request) -> web.StreamResponse:
        headers = {_VERSION_HEADER: _VERSION_VALUE}
        try:
            proxy_request = await new_request(request, cfg.query_string)
            response = await asyncio.wait_for(proxy(proxy_request), endpoint_timeout)
        except Exception:
            return web.Response(status=500, headers=headers)

        if cache_seconds != 0 and response is not None and response.is_complete:
            headers["Cache-Control"] = f"public, max-age={int(cache_seconds)}"
            return web.json_response(response.data, headers=headers)
        return web.json_response({}, headers=headers)

    return handler


async def new_request(request: web.Request, query_string: Iterable[str]) -> Request:
    """Turn an incoming request into the request sent down the proxy chain."""
    params = {_title(key): value for key, value in _params(request).items()}

    headers: dict[str, list[str]] = {
        "X-Forwarded-For": [_client_ip(request)],
        "User-Agent": [_USER_AGENT],
    }
    for name in _HEADERS_TO_SEND:
        if name in request.headers:
            headers[name] = list(request.headers.getall(name))

    query = {
        name: [value] for name in query_string if (value := request.query.get(name, ""))
    }
    body = await request.read()
    return Request(
        method=request.method,
        query=query,
        body=body or None,
        params=params,
        headers=headers,
    )


class EngineRouter:
    """Registers every endpoint and serves them."""

    def __init__(self, proxy_factory: Any, logger: Any) -> None:
        self.proxy_factory = proxy_factory
        self.logger = logger

    def build_app(self, cfg: ServiceConfig) -> web.Application:
        """Return the web application for ``cfg``; invalid endpoints are skipped."""
        if cfg.debug:
            self.logger.debug("Debug enabled")
        app = web.Application(
            middlewares=[web.normalize_path_middleware(append_slash=False, remove_slash=True)]
        )

        for endpoint in cfg.endpoints:
            try:
                proxy_stack = self.proxy_factory.new(endpoint)
            except ProxyError as exc:
                self.logger.error("calling the ProxyFactory", str(exc))
                continue
            handler = endpoint_handler(endpoint, proxy_stack)
            path = _route_path(endpoint.endpoint)

            if endpoint.method == "GET":
                app.router.add_get(path, handler, allow_head=False)
            elif endpoint.method in ("POST", "PUT"):
                if len(endpoint.backend) > 1:
                    self.logger.error(
                        f"{endpoint.method} endpoints must have a single backend! Ignoring",
                        endpoint.endpoint,
                    )
                    continue
                app.router.add_route(endpoint.method, path, handler)
            else:
                self.logger.error("Unsupported method", endpoint.method)

        if cfg.debug:
            handler = debug_handler(self.logger)
            for method in ("GET", "POST", "PUT"):
                app.router.add_route(method, "/__debug/{param:.*}", handler)
        return app

    def run(self, cfg: ServiceConfig) -> None:
        """Serve the application on the configured port until stopped."""
        app = self.build_app(cfg)
        try:
            web.run_app(app, port=cfg.port, print=None)
        except OSError as exc:
            self.logger.critical(str(exc))


class EngineRouterFactory:
    """Creates routers sharing one proxy factory and logger."""

    def __init__(self, proxy_factory: Any, logger: Any) -> None:
        self.proxy_factory = proxy_factory
        self.logger = logger

    def new(self) -> EngineRouter:
        return EngineRouter(self.proxy_factory, self.logger)