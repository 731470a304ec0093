"""Reshaping of backend responses: target, filters, renames and grouping."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from .core import Response

_Filter = Callable[[dict[str, Any]], dict[str, Any]]


class EntityFormatter:
    """Formats the data of a response as the backend configuration asks."""

    def __init__(
        self,
        target: str,
        whitelist: Iterable[str] | None,
        blacklist: Iterable[str] | None,
        group: str,
        mappings: Mapping[str, str] | None,
    ) -> None:
        self.target = target
        self.prefix = group
        self.mapping = dict(mappings or {})
        whitelist = list(whitelist or [])
        self._filter = (
            _whitelisting_filter(whitelist)
            if whitelist
            else _blacklisting_filter(blacklist or [])
        )

    def format(self, entity: Response) -> Response:
        """Return a new response with the formatted data."""
        data = dict(entity.data or {})
        if self.target:
            data = _extract_target(self.target, data)
        if data:
            data = self._filter(data)
        if data:
            for former, new in self.mapping.items():
                if former in data:
                    data[new] = data[former]
                    del data[former]
        if self.prefix:
            data = {self.prefix: data}
        return Response(data, entity.is_complete)


def _extract_target(target: str, data: dict[str, Any]) -> dict[str, Any]:
    value = data.get(target)
    return dict(value) if isinstance(value, dict) else {}


def _whitelisting_filter(whitelist: Iterable[str]) -> _Filter:
    rules: dict[str, set[str]] = {}
    for entry in whitelist:
        head, *rest = entry.split(".")
        if rest:
            rules.setdefault(head, set()).update(rest)
        else:
            rules[head] = set()

    def apply(data: dict[str, Any]) -> dict[str, Any]:
        kept: dict[str, Any] = {}
        for key, value in data.items():
            if key not in rules:
                continue
            sub = rules[key]
            if not sub:
                kept[key] = value
            elif filtered := _whitelist_sub(value, sub):
                kept[key] = filtered
        return kept

    return apply


def _whitelist_sub(value: Any, allowed: set[str]) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {key: item for key, item in value.items() if key in allowed}


def _blacklisting_filter(blacklist: Iterable[str]) -> _Filter:
    rules: dict[str, list[str]] = {}
    for entry in blacklist:
        keys = entry.split(".")
        if len(keys) > 1:
            rules.setdefault(keys[0], []).append(keys[1])
        else:
            rules[keys[0]] = []

    def apply(data: dict[str, Any]) -> dict[str, Any]:
        result = dict(data)
        for key, sub in rules.items():
            if not sub:
                result.pop(key, None)
            elif isinstance(result.get(key), dict):
                result[key] = {k: v for k, v in result[key].items() if k not in sub}
        return result

    return apply