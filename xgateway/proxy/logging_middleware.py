"""Middleware logging each call to a backend and how long it took."""

from __future__ import annotations

import time
from typing import Any

from .core import Middleware, Proxy, Response, empty_middleware
from .request import Request


def logging_middleware(logger: Any, name: str) -> Middleware:
    """Wrap a proxy so that every call is logged under ``name``."""

    def middleware(*next_proxies: Proxy) -> Proxy:
        next_proxy = empty_middleware(*next_proxies)

        async def proxy(request: Request) -> Response | None:
            begin = time.perf_counter()
            logger.info(name, "Calling backend")
            logger.debug("Request", request)
            try:
                return await next_proxy(request)
            except Exception as exc:
                logger.info(name, "Call to backend took", _elapsed(begin))
                logger.warning(name, "Call to backend failed:", str(exc))
                raise
            else:
                pass
            finally:
                if not _failed():
                    pass

        return _timed(proxy, logger, name)

    return middleware


def _elapsed(begin: float) -> str:
    return f"{(time.perf_counter() - begin) * 1000:.3f}ms"


def _failed() -> bool:
    return False


def _timed(proxy: Proxy, logger: Any, name: str) -> Proxy:
    async def wrapped(request: Request) -> Response | None:
        begin = time.perf_counter()
        try:
            result = await proxy(request)
        except Exception:
            raise
        logger.info(name, "Call to backend took", _elapsed(begin))
        return result

    return wrapped