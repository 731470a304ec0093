"""Middlewares that pick a backend host for each request."""

from __future__ import annotations

import time
from collections.abc import Mapping
from urllib.parse import urlencode, urlsplit, urlunsplit

from ..config import Backend
from ..sd import Balancer, FixedSubscriber, RandomBalancer, RoundRobinBalancer
from .core import Middleware, Proxy, Response, empty_middleware
from .request import Request


def round_robin_middleware(remote: Backend) -> Middleware:
    """Send each request to the backend's hosts in turn."""
    return _load_balanced_middleware(RoundRobinBalancer(FixedSubscriber(remote.host)))


def random_middleware(remote: Backend) -> Middleware:
    """Send each request to one of the backend's hosts at random."""
    return _load_balanced_middleware(
        RandomBalancer(FixedSubscriber(remote.host), time.time_ns())
    )


def _build_url(host: str, path: str, query: Mapping[str, list[str]]) -> str:
    parts = urlsplit(host + path)
    encoded = urlencode(sorted(query.items()), doseq=True)
    return urlunsplit(parts._replace(query=encoded))


def _load_balanced_middleware(balancer: Balancer) -> Middleware:
    def middleware(*next_proxies: Proxy) -> Proxy:
        next_proxy = empty_middleware(*next_proxies)

        async def proxy(request: Request) -> Response | None:
            host = balancer.host()
            routed = request.clone()
            routed.url = _build_url(host, routed.path, routed.query)
            return await next_proxy(routed)

        return proxy

    return middleware