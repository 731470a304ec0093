"""Middleware calling several backends in parallel and merging their data."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from ..config import EndpointConfig
from .core import (
    Middleware,
    NoBackendsError,
    NotEnoughProxiesError,
    NullResultError,
    Proxy,
    Response,
    empty_middleware,
)
from .request import Request


def merge_data_middleware(endpoint_config: EndpointConfig) -> Middleware:
    """Build a middleware that merges the responses of every backend."""
    total = len(endpoint_config.backend)
    if total == 0:
        raise NoBackendsError()
    if total == 1:
        return empty_middleware
    service_timeout = endpoint_config.timeout.total_seconds() * 0.85

    def middleware(*next_proxies: Proxy) -> Proxy:
        if len(next_proxies) != total:
            raise NotEnoughProxiesError()

        async def proxy(request: Request) -> Response | None:
            tasks = [asyncio.ensure_future(p(request)) for p in next_proxies]
            pending: set[asyncio.Future[Response | None]] = set()
            try:
                _, pending = await asyncio.wait(tasks, timeout=max(service_timeout, 0))
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

            error: BaseException | None = None
            parts: list[Response | None] = []
            for task in tasks:
                part = None
                if task in pending or task.cancelled():
                    error = TimeoutError("context deadline exceeded")
                elif (exc := task.exception()) is not None:
                    error = exc
                elif (part := task.result()) is None:
                    error = NullResultError()
                parts.append(part)
            if error is not None:
                raise error
            return combine_data(total, parts)

        return proxy

    return middleware


def combine_data(total: int, parts: Sequence[Response | None]) -> Response:
    """Merge the data of complete parts; the result is complete only if all are."""
    composed: dict = {}
    is_complete = len(parts) == total
    for part in parts:
        if part is not None and part.is_complete:
            composed.update(part.data)
        else:
            is_complete = False
    return Response(composed, is_complete)