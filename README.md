# xgateway

An API gateway that exposes a set of endpoints described in a configuration
file. Each endpoint fans out to one or more backends over HTTP; the backend
responses are filtered, renamed, grouped and merged into a single JSON
document.

## Installation

```
pip install xgateway
```

## Running

```
xgateway -c etc/configuration.json -p 8080 -l DEBUG -d
```

| Option | Meaning | Default |
| ------ | ------- | ------- |
| `-c`   | Path to the configuration file | `etc/configuration.json` |
| `-p`   | Port to listen on; overrides the file when non-zero | `0` |
| `-l`   | Logging level: `DEBUG`, `INFO`, `NOTICE`, `WARNING`, `ERROR`, `CRITICAL` (any case) | `ERROR` |
| `-d`   | Enable debug mode (also enabled by `debug` in the file) | off |

The command exits with status 1 if the configuration cannot be read or is
invalid, or if the logging level is unknown. Log lines go to standard output.

## Configuration

The file is read as JSON (`.json`) or TOML (`.toml`). Keys are matched
case-insensitively. A non-empty environment variable named after an
upper-cased top-level key (for example `PORT`) overrides that key.

```json
{
  "version": 1,
  "port": 8080,
  "timeout": "3ms",
  "cache_ttl": "300s",
  "host": ["http://127.0.0.1:8000"],
  "endpoints": [
    {
      "endpoint": "/users/{id}",
      "method": "GET",
      "querystring_params": ["lang"],
      "backend": [
        {
          "url_pattern": "/registered/{id}",
          "whitelist": ["id", "name", "address.city"],
          "mapping": {"name": "full_name"}
        },
        {
          "host": ["https://posts.internal"],
          "url_pattern": "/posts/{id}",
          "group": "posts",
          "encoding": "xml"
        }
      ]
    }
  ]
}
```

- `version` must be `1`; `port` defaults to `8080`.
- Durations (`timeout`, `cache_ttl`) are strings such as `"300s"`, `"1.5h"`
  or `"250ms"`, or plain integers counting nanoseconds. Endpoints inherit the
  service-wide values when they set none.
- At request time the endpoint deadline reads the configured timeout as a
  number of milliseconds: `"3ms"` gives a 3 second deadline. Multi-backend
  merging and concurrent calls cut off at 85% and 75% of the timeout itself.
- Hosts are normalised to `scheme://name[:port]`, with `http://` added when no
  scheme is given.
- An endpoint's `method` defaults to `GET`; a backend without `method` or
  `host` takes the endpoint's method and the service-wide hosts.
- Every `{placeholder}` in a backend `url_pattern` must be a path parameter
  of its endpoint.
- Endpoint paths must start with `/`; paths under `/__debug` are reserved;
  every endpoint needs at least one backend.
- `encoding: "xml"` decodes backend answers as XML; anything else as JSON.
- `concurrent_calls` greater than 1 sends that many identical calls to the
  backend and keeps the first complete answer.

## Behaviour

- Backends are picked round-robin from their host list, and the configured
  query-string parameters, `Content-Type`, `User-Agent` and `X-Forwarded-For`
  headers are forwarded.
- A backend answer counts only when its status is `201 Created`; any other
  status is an error.
- Per backend, `target` extracts one field to the root, `whitelist` or
  `blacklist` filter fields (one level of nesting, such as `address.zip`),
  `mapping` renames fields and `group` nests the result under a key.
- Several backends are called in parallel and their data merged; `POST` and
  `PUT` endpoints take a single backend only.
- The endpoint returns the response data, with a `Cache-Control:
  public, max-age=N` header, only when a `cache_ttl` is set and every backend
  answered; otherwise it returns `{}`. Errors and timeouts give status 500.
- In debug mode, `/__debug/...` accepts `GET`, `POST` and `PUT`, logs the
  request and answers `{"message": "pong"}`.

## Use as a library

```python
import sys

from xgateway.config import parse
from xgateway.logger import new_logger
from xgateway.proxy.factory import default_factory
from xgateway.router.engine import EngineRouterFactory

cfg = parse("etc/configuration.json")
logger = new_logger("INFO", sys.stdout, "[gw]")
EngineRouterFactory(default_factory(logger), logger).new().run(cfg)
```

- `EngineRouter.build_app(cfg)` returns the `aiohttp` application without
  starting a server.
- `xgateway.router.mux.MuxRouterFactory` builds a second router that matches
  exact paths and slash-terminated prefixes and passes no path parameters.
- `xgateway.proxy` holds the building blocks: `Request`, `Response`,
  `EntityFormatter`, `round_robin_middleware`, `random_middleware`,
  `concurrent_middleware`, `merge_data_middleware`, `logging_middleware` and
  `request_builder_middleware`.
- `xgateway.sd` provides `FixedSubscriber`, `RoundRobinBalancer` and
  `RandomBalancer`.

## Limitations

- Hosts are a fixed list from the configuration; there is no dynamic service
  discovery.
- The command always uses the routing engine; the mux router and the random
  and logging middlewares are available only from Python.
- There are no metrics, rate limiting or response caching beyond the
  `Cache-Control` header.