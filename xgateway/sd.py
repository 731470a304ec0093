"""Service discovery: host subscribers and load balancers."""

from __future__ import annotations

import itertools
import random
import threading
from abc import ABC, abstractmethod
from typing import Any


class NoHostsError(LookupError):
    """Raised when a balancer has no hosts to choose from."""

    def __init__(self, message: str = "no hosts available") -> None:
        super().__init__(message)


class FixedSubscriber(list):
    """A subscriber over a fixed list of hosts."""

    def hosts(self) -> list[str]:
        return list(self)


class Balancer(ABC):
    """Picks one host for each call."""

    @abstractmethod
    def host(self) -> str:
        """Return the host to use next."""


class RoundRobinBalancer(Balancer):
    """Cycles through the subscriber's hosts in order."""

    def __init__(self, subscriber: Any) -> None:
        self._subscriber = subscriber
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def host(self) -> str:
        hosts = self._subscriber.hosts()
        if not hosts:
            raise NoHostsError()
        with self._lock:
            offset = next(self._counter)
        return hosts[offset % len(hosts)]


class RandomBalancer(Balancer):
    """Picks a host at random with a seeded generator."""

    def __init__(self, subscriber: Any, seed: int) -> None:
        self._subscriber = subscriber
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def host(self) -> str:
        hosts = self._subscriber.hosts()
        if not hosts:
            raise NoHostsError()
        with self._lock:
            index = self._random.randrange(len(hosts))
        return hosts[index]