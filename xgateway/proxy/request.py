"""The request passed along a proxy chain."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field


@dataclass
class Request:
    """A request travelling from the router down to a backend."""

    method: str = ""
    url: str | None = None
    query: dict[str, list[str]] = field(default_factory=dict)
    path: str = ""
    body: bytes | None = None
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, list[str]] = field(default_factory=dict)

    def generate_path(self, url_pattern: str) -> None:
        """Set the path from a ``{{.Key}}`` pattern filled with the params."""
        path = url_pattern
        for key, value in self.params.items():
            path = path.replace("{{." + key + "}}", value)
        self.path = path

    def clone(self) -> Request:
        """Return a shallow copy of the request."""
        return dataclasses.replace(self)