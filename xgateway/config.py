"""Service configuration: loading, defaults and validation."""

from __future__ import annotations

import json
import os
import re
import tomllib
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction
from pathlib import Path
from typing import Any

from .encoding import json_decoder, xml_decoder

SIMPLE_URL_KEYS_PATTERN = re.compile(r"\{([a-zA-Z\-_0-9]+)\}")
ENDPOINT_URL_KEYS_PATTERN = re.compile(r"/\{([a-zA-Z\-_0-9]+)\}")
HOST_PATTERN = re.compile(r"(https?://)?([a-zA-Z0-9._\-]+)(:[0-9]{2,6})?/?")
INVALID_ENDPOINT_PATTERN = re.compile(r"^[^/]|/__debug(/.*)?$")
DEFAULT_PORT = 8080


class ConfigError(Exception):
    """Raised for an invalid or unreadable configuration."""


@dataclass
class Backend:
    """How to reach a backend and how to process its response."""

    group: str = ""
    method: str = ""
    host: list[str] = field(default_factory=list)
    url_pattern: str = ""
    blacklist: list[str] = field(default_factory=list)
    whitelist: list[str] = field(default_factory=list)
    mapping: dict[str, str] = field(default_factory=dict)
    encoding: str = ""
    target: str = ""
    url_keys: list[str] = field(default_factory=list)
    concurrent_calls: int = 0
    timeout: timedelta = timedelta(0)
    decoder: Callable[..., dict[str, Any]] | None = None

    @classmethod
    def _from_dict(cls, data: Any) -> Backend:
        d = _lower_keys(data, "backend")
        return cls(
            group=_as_str(d.get("group"), "group"),
            method=_as_str(d.get("method"), "method"),
            host=[_as_str(h, "host") for h in _as_list(d.get("host"), "host")],
            url_pattern=_as_str(d.get("url_pattern"), "url_pattern"),
            blacklist=[_as_str(b, "blacklist") for b in _as_list(d.get("blacklist"), "blacklist")],
            whitelist=[_as_str(w, "whitelist") for w in _as_list(d.get("whitelist"), "whitelist")],
            mapping=_as_mapping(d.get("mapping"), "mapping"),
            encoding=_as_str(d.get("encoding"), "encoding"),
            target=_as_str(d.get("target"), "target"),
        )


@dataclass
class EndpointConfig:
    """A single endpoint exposed by the service."""

    endpoint: str = ""
    method: str = ""
    backend: list[Backend] = field(default_factory=list)
    concurrent_calls: int = 0
    timeout: timedelta = timedelta(0)
    cache_ttl: timedelta = timedelta(0)
    query_string: list[str] = field(default_factory=list)

    def validate(self) -> None:
        """Reject debug paths, relative paths and endpoints without backends."""
        if INVALID_ENDPOINT_PATTERN.search(self.endpoint):
            raise ConfigError(
                f"ERROR: the endpoint url path [{self.endpoint}] is not a valid one!!! Ignoring"
            )
        if not self.backend:
            raise ConfigError(
                f"WARNING: the [{self.endpoint}] endpoint has 0 backends defined! Ignoring"
            )

    @classmethod
    def _from_dict(cls, data: Any) -> EndpointConfig:
        d = _lower_keys(data, "endpoint")
        return cls(
            endpoint=_as_str(d.get("endpoint"), "endpoint"),
            method=_as_str(d.get("method"), "method"),
            backend=[Backend._from_dict(b) for b in _as_list(d.get("backend"), "backend")],
            concurrent_calls=_as_int(d.get("concurrent_calls"), "concurrent_calls"),
            timeout=_as_duration(d.get("timeout"), "timeout"),
            cache_ttl=_as_duration(d.get("cache_ttl"), "cache_ttl"),
            query_string=[
                _as_str(q, "querystring_params")
                for q in _as_list(d.get("querystring_params"), "querystring_params")
            ],
        )


@dataclass
class ServiceConfig:
    """The whole service: endpoints plus service-wide defaults."""

    endpoints: list[EndpointConfig] = field(default_factory=list)
    timeout: timedelta = timedelta(0)
    cache_ttl: timedelta = timedelta(0)
    host: list[str] = field(default_factory=list)
    port: int = 0
    version: int = 0
    debug: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> ServiceConfig:
        """Build a configuration from a mapping; keys match case-insensitively."""
        d = _lower_keys(data, "service")
        return cls(
            endpoints=[EndpointConfig._from_dict(e) for e in _as_list(d.get("endpoints"), "endpoints")],
            timeout=_as_duration(d.get("timeout"), "timeout"),
            cache_ttl=_as_duration(d.get("cache_ttl"), "cache_ttl"),
            host=[_as_str(h, "host") for h in _as_list(d.get("host"), "host")],
            port=_as_int(d.get("port"), "port"),
            version=_as_int(d.get("version"), "version"),
            debug=_as_bool(d.get("debug"), "debug"),
        )

    def init(self) -> None:
        """Validate the configuration and fill in every default."""
        if self.version != 1:
            raise ConfigError(f"Unsupported version: {self.version}")
        if self.port == 0:
            self.port = DEFAULT_PORT
        self.host = clean_hosts(self.host)
        for endpoint in self.endpoints:
            endpoint.endpoint = clean_path(endpoint.endpoint)
            endpoint.validate()

            input_params = extract_placeholders(endpoint.endpoint, ENDPOINT_URL_KEYS_PATTERN)
            input_set = set(input_params)
            endpoint.endpoint = get_endpoint_path(endpoint.endpoint, input_params)

            self._init_endpoint_defaults(endpoint)
            for backend in endpoint.backend:
                self._init_backend_defaults(endpoint, backend)
                backend.method = backend.method.upper()
                init_backend_url_mappings(backend, input_set)

    def _init_endpoint_defaults(self, endpoint: EndpointConfig) -> None:
        endpoint.method = endpoint.method.upper() if endpoint.method else "GET"
        if self.cache_ttl and not endpoint.cache_ttl:
            endpoint.cache_ttl = self.cache_ttl
        if self.timeout and not endpoint.timeout:
            endpoint.timeout = self.timeout
        if endpoint.concurrent_calls == 0:
            endpoint.concurrent_calls = 1

    def _init_backend_defaults(self, endpoint: EndpointConfig, backend: Backend) -> None:
        backend.host = clean_hosts(backend.host) if backend.host else list(self.host)
        if not backend.method:
            backend.method = endpoint.method
        backend.timeout = endpoint.timeout
        backend.concurrent_calls = endpoint.concurrent_calls
        backend.decoder = xml_decoder if backend.encoding.lower() == "xml" else json_decoder


def extract_placeholders(subject: str, pattern: re.Pattern[str]) -> list[str]:
    """Return the first group of every match of ``pattern`` in ``subject``."""
    return [match.group(1) for match in pattern.finditer(subject)]


def clean_host(host: str) -> str:
    """Normalise a host to scheme://name[:port], defaulting to http."""
    matches = list(HOST_PATTERN.finditer(host))
    if len(matches) != 1:
        raise ConfigError("invalid host")
    scheme, name, port = (part or "" for part in matches[0].groups())
    return (scheme or "http://") + name + port


def clean_hosts(hosts: Iterable[str]) -> list[str]:
    return [clean_host(host) for host in hosts]


def clean_path(path: str) -> str:
    """Ensure the path starts with exactly one leading slash."""
    return "/" + path.removeprefix("/")


def get_endpoint_path(path: str, params: Iterable[str]) -> str:
    """Turn ``/{param}`` segments into ``/:param`` route segments."""
    result = path
    for param in params:
        result = result.replace("/{" + param + "}", "/:" + param)
    return result


def _is_separator(char: str) -> bool:
    if ord(char) < 0x80:
        return not (char.isalnum() or char == "_")
    if char.isalpha() or char.isdigit():
        return False
    return char.isspace()


def _title(text: str) -> str:
    chars = []
    previous = " "
    for char in text:
        chars.append(char.upper() if _is_separator(previous) else char)
        previous = char
    return "".join(chars)


def init_backend_url_mappings(backend: Backend, input_params: Iterable[str]) -> None:
    """Rewrite the backend URL pattern into ``{{.Key}}`` template form."""
    inputs = set(input_params)
    backend.url_pattern = clean_path(backend.url_pattern)
    output_params = extract_placeholders(backend.url_pattern, SIMPLE_URL_KEYS_PATTERN)
    if len(set(output_params)) > len(inputs):
        raise ConfigError(
            f"Too many output params! input: {sorted(inputs)}, output: {output_params}"
        )

    pattern = backend.url_pattern
    keys = []
    for param in output_params:
        if param not in inputs:
            raise ConfigError(
                f"Undefined output param [{param}]! input: {sorted(inputs)}, output: {output_params}"
            )
        key = _title(param)
        pattern = pattern.replace("{" + param + "}", "{{." + key + "}}")
        keys.append(key)
    backend.url_pattern = pattern
    backend.url_keys = keys


def parse(config_file: str | os.PathLike[str]) -> ServiceConfig:
    """Read, decode and initialise a configuration file (JSON or TOML).

    Environment variables named after upper-cased top-level keys override them.
    """
    path = Path(config_file)
    try:
        data = _read_config_file(path)
    except (OSError, ValueError, ConfigError) as exc:
        raise ConfigError(f"Fatal error config file: {exc}") from exc
    try:
        cfg = ServiceConfig.from_dict(_apply_env(data))
    except ConfigError as exc:
        raise ConfigError(f"Fatal error unmarshalling config file: {exc}") from exc
    cfg.init()
    return cfg


def _read_config_file(path: Path) -> Any:
    extension = path.suffix.lower().lstrip(".")
    if extension == "json":
        with path.open(encoding="utf-8") as stream:
            return json.load(stream)
    if extension == "toml":
        with path.open("rb") as stream:
            return tomllib.load(stream)
    raise ConfigError(f'Unsupported Config Type "{extension}"')


def _apply_env(data: Any) -> Any:
    if not isinstance(data, Mapping):
        return data
    merged = {str(key).lower(): value for key, value in data.items()}
    for key in merged:
        value = os.environ.get(key.upper())
        if value:
            merged[key] = value
    return merged


def _lower_keys(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"'{what}' expected a map, got '{type(data).__name__}'")
    return {str(key).lower(): value for key, value in data.items()}


def _as_str(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    raise ConfigError(f"'{name}' expected type 'string', got '{type(value).__name__}'")


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _as_bool(value: Any, name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value == "" or value in _FALSE:
            return False
        if value in _TRUE:
            return True
        raise ConfigError(f"cannot parse '{name}' as bool: {value!r}")
    raise ConfigError(f"'{name}' expected type 'bool', got '{type(value).__name__}'")


def _as_int(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value == "":
            return 0
        try:
            return int(value, 0)
        except ValueError:
            raise ConfigError(f"cannot parse '{name}' as int: {value!r}") from None
    raise ConfigError(f"'{name}' expected type 'int', got '{type(value).__name__}'")


def _as_list(value: Any, name: str) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, Mapping):
        raise ConfigError(f"'{name}' expected a list, got a map")
    return [value]


def _as_mapping(value: Any, name: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{name}' expected a map, got '{type(value).__name__}'")
    return {str(key): _as_str(item, name) for key, item in value.items()}


_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|h|m|s)"
_DURATION_PATTERN = re.compile(rf"([-+]?)((?:{_DURATION_PART})+)")
_DURATION_PART_PATTERN = re.compile(_DURATION_PART)


def _nanoseconds(count: int | Fraction) -> timedelta:
    return timedelta(microseconds=float(Fraction(count) / 1000))


def _parse_duration(text: str) -> timedelta:
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    match = _DURATION_PATTERN.fullmatch(text)
    if not match:
        raise ConfigError(f'time: invalid duration "{text}"')
    total = sum(
        (Fraction(number) * _DURATION_UNITS[unit]
         for number, unit in _DURATION_PART_PATTERN.findall(match.group(2))),
        Fraction(0),
    )
    if match.group(1) == "-":
        total = -total
    return _nanoseconds(total)


def _as_duration(value: Any, name: str) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' expected a duration, got 'bool'")
    if isinstance(value, (int, float)):
        return _nanoseconds(int(value))
    if isinstance(value, str):
        return _parse_duration(value)
    raise ConfigError(f"'{name}' expected a duration, got '{type(value).__name__}'")