"""Middleware sending the same request several times and keeping the best answer."""

from __future__ import annotations

import asyncio

from ..config import Backend
from .core import Middleware, NullResultError, Proxy, Response, TooManyProxiesError, empty_middleware
from .request import Request


def concurrent_middleware(remote: Backend) -> Middleware:
    """Fire ``remote.concurrent_calls`` identical calls; return the first complete one."""
    if remote.concurrent_calls == 1:
        raise TooManyProxiesError()
    service_timeout = remote.timeout.total_seconds() * 0.75
    calls = remote.concurrent_calls

    def middleware(*next_proxies: Proxy) -> Proxy:
        next_proxy = empty_middleware(*next_proxies)

        async def proxy(request: Request) -> Response | None:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + service_timeout
            pending = {asyncio.ensure_future(next_proxy(request)) for _ in range(calls)}
            response: Response | None = None
            error: BaseException | None = None
            try:
                while pending:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        break
                    done, pending = await asyncio.wait(
                        pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                    )
                    for task in done:
                        if task.cancelled():
                            continue
                        if (exc := task.exception()) is not None:
                            error = exc
                            continue
                        result = task.result()
                        if result is None:
                            error = NullResultError()
                            continue
                        response = result
                        if result.is_complete:
                            return result
                if pending:
                    error = TimeoutError("context deadline exceeded")
            finally:
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
            if error is not None:
                raise error
            return response

        return proxy

    return middleware