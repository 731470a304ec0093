"""HTTP router dispatching on exact paths and path prefixes."""

from __future__ import annotations

import asyncio
import json
import posixpath
from collections.abc import Awaitable, Callable, Iterable
from http import HTTPStatus
from typing import Any

from aiohttp import web

from ..config import EndpointConfig, ServiceConfig
from ..proxy.core import Proxy, ProxyError
from ..proxy.request import Request

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_HEADERS_TO_SEND = ("Content-Type",)
_USER_AGENT = "X_X Version undefined"
_VERSION_HEADER = "X_X"
_VERSION_VALUE = "Version undefined"
_INTERNAL_ERROR = "internal server error"
_NOT_FOUND = "404 page not found"
_DEBUG_PATTERN = "/__debug/"
# The endpoint deadline reads the configured duration as a count of milliseconds.
_ENDPOINT_TIMEOUT_SCALE = 1_000_000


def _marshal(data: Any) -> bytes:
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def _error(
    message: str, status: int, headers: dict[str, str] | None = None
) -> web.Response:
    response = web.Response(status=status, text=message + "\n", headers=headers)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def _redirect(request: web.Request, path: str) -> web.Response:
    location = path + ("?" + request.query_string if request.query_string else "")
    return web.Response(
        status=HTTPStatus.MOVED_PERMANENTLY, headers={"Location": location}
    )


def _clean_path(path: str) -> str:
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    if path.endswith("/") and cleaned != "/":
        cleaned += "/"
    return cleaned


def _remote_addr(request: web.Request) -> str:
    transport = request.transport
    peer = transport.get_extra_info("peername") if transport is not None else None
    if isinstance(peer, tuple) and len(peer) >= 2:
        host, port = peer[0], peer[1]
        return f"[{host}]:{port}" if ":" in str(host) else f"{host}:{port}"
    return request.remote or ""


class _ServeMux:
    """Matches exact patterns first, then the longest pattern ending in a slash."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def handle(self, pattern: str, handler: Handler) -> None:
        if not pattern:
            raise ValueError("http: invalid pattern")
        if pattern in self._handlers:
            raise ValueError(f"http: multiple registrations for {pattern}")
        self._handlers[pattern] = handler

    def _match(self, path: str) -> Handler | None:
        if (handler := self._handlers.get(path)) is not None:
            return handler
        subtrees = [
            pattern
            for pattern in self._handlers
            if pattern.endswith("/") and path.startswith(pattern)
        ]
        if not subtrees:
            return None
        return self._handlers[max(subtrees, key=len)]

    async def dispatch(self, request: web.Request) -> web.StreamResponse:
        path = request.path
        cleaned = _clean_path(path)
        if cleaned != path:
            return _redirect(request, cleaned)
        if path not in self._handlers and path + "/" in self._handlers:
            return _redirect(request, path + "/")
        handler = self._match(path)
        if handler is None:
            return _error(_NOT_FOUND, HTTPStatus.NOT_FOUND)
        return await handler(request)


def debug_handler(logger: Any) -> Handler:
    """Build a handler that logs the whole request and answers with a pong."""

    async def handler(request: web.Request) -> web.StreamResponse:
        logger.debug("Method:", request.method)
        logger.debug("URL:", request.path_qs)
        logger.debug(
            "Query:", {key: request.query.getall(key) for key in request.query.keys()}
        )
        logger.debug("Headers:", dict(request.headers))
        body = await request.read()
        logger.debug("Body:", body.decode("utf-8", errors="replace"))
        return web.Response(
            body=_marshal({"message": "pong"}), content_type="application/json"
        )

    return handler


def endpoint_handler(cfg: EndpointConfig, proxy: Proxy) -> Handler:
    """Build the handler that runs ``proxy`` for each request to ``cfg``."""
    endpoint_timeout = cfg.timeout.total_seconds() * _ENDPOINT_TIMEOUT_SCALE
    cache_seconds = cfg.cache_ttl.total_seconds()

    async def handler(request: web.Request) -> web.StreamResponse:
        if request.method != cfg.method:
            return _error("", HTTPStatus.METHOD_NOT_ALLOWED)

        headers = {_VERSION_HEADER: _VERSION_VALUE}
        loop = asyncio.get_running_loop()
        deadline = loop.time() + endpoint_timeout
        timeout = asyncio.timeout_at(deadline)
        try:
            proxy_request = await new_request(request, cfg.query_string)
            async with timeout:
                response = await proxy(proxy_request)
        except Exception as exc:
            if isinstance(exc, TimeoutError) and timeout.expired():
                return _error(_INTERNAL_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR, headers)
            return _error(str(exc), HTTPStatus.INTERNAL_SERVER_ERROR, headers)

        if loop.time() >= deadline:
            return _error(_INTERNAL_ERROR, HTTPStatus.INTERNAL_SERVER_ERROR, headers)

        body = b""
        if response is not None:
            try:
                body = _marshal(response.data)
            except (TypeError, ValueError) as exc:
                return _error(str(exc), HTTPStatus.INTERNAL_SERVER_ERROR, headers)
            if cache_seconds != 0 and response.is_complete:
                headers["Cache-Control"] = f"public, max-age={int(cache_seconds)}"
        headers["Content-Type"] = "application/json"
        return web.Response(body=body, headers=headers)

    return handler


async def new_request(request: web.Request, query_string: Iterable[str]) -> Request:
    """Turn an incoming request into the request sent down the proxy chain."""
    headers: dict[str, list[str]] = {
        "X-Forwarded-For": [_remote_addr(request)],
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
        params={},
        headers=headers,
    )


class MuxRouter:
    """Registers every endpoint on a path multiplexer and serves them."""

    def __init__(self, proxy_factory: Any, logger: Any) -> None:
        self.proxy_factory = proxy_factory
        self.logger = logger

    def build_app(self, cfg: ServiceConfig) -> web.Application:
        """Return the web application for ``cfg``; invalid endpoints are skipped."""
        mux = _ServeMux()
        for endpoint in cfg.endpoints:
            try:
                proxy_stack = self.proxy_factory.new(endpoint)
            except ProxyError as exc:
                self.logger.error("calling the ProxyFactory", str(exc))
                continue

            if endpoint.method in ("POST", "PUT"):
                if len(endpoint.backend) > 1:
                    self.logger.error(
                        f"{endpoint.method} endpoints must have a single backend! Ignoring",
                        endpoint.endpoint,
                    )
                    continue
            elif endpoint.method != "GET":
                self.logger.error("Unsupported method", endpoint.method)
                continue
            mux.handle(endpoint.endpoint, endpoint_handler(endpoint, proxy_stack))

        if cfg.debug:
            mux.handle(_DEBUG_PATTERN, debug_handler(self.logger))

        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", mux.dispatch)
        return app

    def run(self, cfg: ServiceConfig) -> None:
        """Serve the application on the configured port until stopped."""
        app = self.build_app(cfg)
        try:
            web.run_app(app, port=cfg.port, print=None)
        except OSError as exc:
            self.logger.critical(str(exc))


class MuxRouterFactory:
    """Creates multiplexing routers sharing one proxy factory and logger."""

    def __init__(self, proxy_factory: Any, logger: Any) -> None:
        self.proxy_factory = proxy_factory
        self.logger = logger

    def new(self) -> MuxRouter:
        return MuxRouter(self.proxy_factory, self.logger)