"""Core proxy types: responses, errors and the pass-through middleware."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .request import Request

Proxy = Callable[["Request"], Awaitable["Response | None"]]
Middleware = Callable[..., Proxy]


@dataclass
class Response:
    """Data returned by a proxy and whether every part of it arrived."""

    data: dict[str, Any] = field(default_factory=dict)
    is_complete: bool = False


class ProxyError(Exception):
    """Base class for errors raised while building or running proxies."""

    default_message = "proxy error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NoBackendsError(ProxyError):
    default_message = "all endpoints must have at least one backend"


class TooManyBackendsError(ProxyError):
    default_message = "too many backends for this proxy"


class TooManyProxiesError(ProxyError):
    default_message = "too many proxies for this proxy middleware"


class NotEnoughProxiesError(ProxyError):
    default_message = "not enough proxies for this endpoint"


class NullResultError(ProxyError):
    default_message = "invalid response"


def empty_middleware(*args: Proxy) -> Proxy:
    """Return the single proxy it is given, unchanged."""
    if len(args) > 1:
        raise TooManyProxiesError()
    if not args:
        raise NotEnoughProxiesError()
    return args[0]


async def noop_proxy(request: Request) -> Response | None:
    """A proxy that yields to the event loop once and returns no response."""
    await asyncio.sleep(0)
    return None