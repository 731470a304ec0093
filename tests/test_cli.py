import json
from unittest.mock import patch

import pytest

from xgateway.cli import build_parser, main

ENV_KEYS = ("VERSION", "PORT", "ENDPOINTS", "DEBUG", "HOST", "TIMEOUT", "CACHE_TTL")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def write_config(tmp_path, **overrides):
    data = {
        "version": 1,
        "port": 1234,
        "endpoints": [
            {
                "endpoint": "/foo",
                "backend": [{"host": ["http://127.0.0.1:9"], "url_pattern": "/bar"}],
            }
        ],
    }
    data.update(overrides)
    path = tmp_path / "configuration.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def canonicals(app):
    return [resource.canonical for resource in app.router.resources()]


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.port == 0
    assert args.level == "ERROR"
    assert args.debug is False
    assert args.config == "etc/configuration.json"


def test_parser_reads_every_flag():
    args = build_parser().parse_args(["-p", "9000", "-l", "DEBUG", "-d", "-c", "x.json"])
    assert args.port == 9000
    assert args.level == "DEBUG"
    assert args.debug is True
    assert args.config == "x.json"


def test_missing_config_exits_with_error(tmp_path, capsys):
    with pytest.raises(SystemExit) as info:
        main(["-c", str(tmp_path / "missing.json")])
    assert info.value.code == 1
    err = capsys.readouterr().err
    assert err.startswith("ERROR:")
    assert "Fatal error config file" in err


def test_unsupported_version_exits(tmp_path, capsys):
    path = write_config(tmp_path, version=2)
    with pytest.raises(SystemExit) as info:
        main(["-c", path])
    assert info.value.code == 1
    assert "Unsupported version: 2" in capsys.readouterr().err


def test_invalid_log_level_exits(tmp_path):
    path = write_config(tmp_path)
    with patch("aiohttp.web.run_app") as run_app:
        with pytest.raises(SystemExit) as info:
            main(["-c", path, "-l", "LOUD"])
    assert info.value.code == 1
    assert run_app.call_count == 0


def test_serves_on_configured_port(tmp_path):
    path = write_config(tmp_path)
    with patch("aiohttp.web.run_app") as run_app:
        assert main(["-c", path]) == 0
    assert run_app.call_args.kwargs["port"] == 1234
    app = run_app.call_args.args[0]
    assert "/foo" in canonicals(app)
    assert not any(c.startswith("/__debug") for c in canonicals(app))


def test_port_flag_overrides_config(tmp_path):
    path = write_config(tmp_path)
    with patch("aiohttp.web.run_app") as run_app:
        assert main(["-c", path, "-p", "9000"]) == 0
    assert run_app.call_args.kwargs["port"] == 9000
    assert "/foo" in canonicals(run_app.call_args.args[0])


def test_debug_flag_adds_debug_routes(tmp_path):
    path = write_config(tmp_path)
    with patch("aiohttp.web.run_app") as run_app:
        assert main(["-c", path, "-d"]) == 0
    app = run_app.call_args.args[0]
    assert "/foo" in canonicals(app)
    assert any(c.startswith("/__debug/") for c in canonicals(app))