"""Decoders that turn a backend response body into a dictionary."""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from collections.abc import Callable
from typing import IO, Any

Decoder = Callable[[IO[Any]], dict[str, Any]]

_JSON_WHITESPACE = " \t\n\r"


def json_decoder(stream: IO[Any]) -> dict[str, Any]:
    """Decode the first JSON value in ``stream``, which must be an object or null."""
    raw = stream.read()
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8")
    text = raw.lstrip(_JSON_WHITESPACE)
    if not text:
        raise ValueError("unexpected end of JSON input")
    value, _ = json.JSONDecoder().raw_decode(text)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(
            f"json: cannot unmarshal {type(value).__name__} into a map"
        )
    return value


def _element_value(element: ET.Element) -> Any:
    text = (element.text or "").strip()
    children = list(element)
    if not children and not element.attrib:
        return text
    value: dict[str, Any] = {f"@{key}": item for key, item in element.attrib.items()}
    grouped: dict[str, list[Any]] = {}
    for child in children:
        grouped.setdefault(child.tag, []).append(_element_value(child))
    for tag, items in grouped.items():
        value[tag] = items[0] if len(items) == 1 else items
    if text:
        value["#text"] = text
    return value


def xml_decoder(stream: IO[Any]) -> dict[str, Any]:
    """Decode an XML document into a dictionary keyed by its root element."""
    try:
        root = ET.parse(stream).getroot()
    except ET.ParseError as exc:
        raise ValueError(f"invalid XML: {exc}") from exc
    return {root.tag: _element_value(root)}