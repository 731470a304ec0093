"""The HTTP backend proxy and the middleware that prepares its requests."""

from __future__ import annotations

import io
from collections.abc import Callable
from http import HTTPStatus

import aiohttp

from ..config import Backend
from ..encoding import Decoder, json_decoder
from .core import Middleware, Proxy, ProxyError, Response, empty_middleware
from .formatter import EntityFormatter
from .request import Request

EXPECTED_STATUS = HTTPStatus.CREATED

ClientFactory = Callable[[], aiohttp.ClientSession]


class InvalidStatusCodeError(ProxyError):
    """Raised when a backend answers with an unexpected status code."""

    default_message = "Invalid status code"


def default_client_factory() -> aiohttp.ClientSession:
    """Return a new HTTP client session."""
    return aiohttp.ClientSession()


def request_builder_middleware(remote: Backend) -> Middleware:
    """Fill in the backend path and method before passing the request on."""

    def middleware(*next_proxies: Proxy) -> Proxy:
        next_proxy = empty_middleware(*next_proxies)

        async def proxy(request: Request) -> Response | None:
            built = request.clone()
            built.generate_path(remote.url_pattern)
            built.method = remote.method
            return await next_proxy(built)

        return proxy

    return middleware


def http_proxy(remote: Backend, client_factory: ClientFactory, decode: Decoder) -> Proxy:
    """Build a proxy that calls the backend over HTTP and formats its answer."""
    formatter = EntityFormatter(
        remote.target, remote.whitelist, remote.blacklist, remote.group, remote.mapping
    )

    async def proxy(request: Request) -> Response | None:
        if request.url is None:
            raise ValueError("request has no URL")
        headers = [
            (name, value) for name, values in request.headers.items() for value in values
        ]
        async with client_factory() as session:
            async with session.request(
                request.method, request.url, data=request.body, headers=headers
            ) as resp:
                if resp.status != EXPECTED_STATUS:
                    raise InvalidStatusCodeError()
                payload = await resp.read()
        data = decode(io.BytesIO(payload))
        return formatter.format(Response(data, True))

    return proxy


def default_backend_factory(remote: Backend) -> Proxy:
    """Build the HTTP proxy for a backend with its configured decoder."""
    return http_proxy(remote, default_client_factory, remote.decoder or json_decoder)