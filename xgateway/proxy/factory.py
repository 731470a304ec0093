"""Assembly of the proxy stack for each endpoint."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from ..config import Backend, EndpointConfig
from .balancing import round_robin_middleware
from .concurrent import concurrent_middleware
from .core import NoBackendsError, Proxy
from .http import default_backend_factory, request_builder_middleware
from .merging import merge_data_middleware

BackendFactory = Callable[[Backend], Proxy]


class ProxyFactory:
    """Builds the proxy chain that serves one endpoint."""

    def __init__(self, backend_factory: BackendFactory, logger: Any) -> None:
        self.backend_factory = backend_factory
        self.logger = logger

    def new(self, cfg: EndpointConfig) -> Proxy:
        """Return the proxy for ``cfg``; raise NoBackendsError without backends."""
        if not cfg.backend:
            raise NoBackendsError()
        if len(cfg.backend) == 1:
            return self._backend_stack(cfg.backend[0])
        stacks = [self._backend_stack(backend) for backend in cfg.backend]
        return merge_data_middleware(cfg)(*stacks)

    def _backend_stack(self, backend: Backend) -> Proxy:
        proxy = self.backend_factory(backend)
        proxy = round_robin_middleware(backend)(proxy)
        if backend.concurrent_calls > 1:
            proxy = concurrent_middleware(backend)(proxy)
        return request_builder_middleware(backend)(proxy)


def default_factory(logger: Any) -> ProxyFactory:
    """Return a factory whose backends are reached over HTTP."""
    return ProxyFactory(default_backend_factory, logger)