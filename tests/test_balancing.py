from urllib.parse import parse_qs, urlsplit

import pytest

from xgateway.config import Backend
from xgateway.proxy.balancing import random_middleware, round_robin_middleware
from xgateway.proxy.core import Response, TooManyProxiesError, noop_proxy
from xgateway.proxy.request import Request
from xgateway.sd import NoHostsError


def recorder():
    seen = []

    async def proxy(request):
        seen.append(request)
        return Response({"ok": True}, True)

    return proxy, seen


@pytest.mark.asyncio
async def test_round_robin_cycles_hosts():
    hosts = ["http://a", "http://b", "http://c"]
    proxy_next, seen = recorder()
    proxy = round_robin_middleware(Backend(host=hosts))(proxy_next)
    for _ in range(6):
        await proxy(Request(path="/foo"))
    assert [r.url for r in seen] == [h + "/foo" for h in hosts * 2]


@pytest.mark.asyncio
async def test_url_carries_query():
    proxy_next, seen = recorder()
    proxy = round_robin_middleware(Backend(host=["http://a:8080"]))(proxy_next)
    query = {"b": ["2"], "a": ["1", "3"]}
    await proxy(Request(path="/foo", query=query))
    parts = urlsplit(seen[0].url)
    assert parts.netloc == "a:8080"
    assert parts.path == "/foo"
    assert parse_qs(parts.query) == query


@pytest.mark.asyncio
async def test_result_is_passed_through_and_request_untouched():
    proxy_next, seen = recorder()
    proxy = round_robin_middleware(Backend(host=["http://a"]))(proxy_next)
    original = Request(path="/foo")
    result = await proxy(original)
    assert result == Response({"ok": True}, True)
    assert original.url is None
    assert seen[0] is not original


@pytest.mark.asyncio
async def test_no_hosts_raises():
    proxy = round_robin_middleware(Backend(host=[]))(noop_proxy)
    with pytest.raises(NoHostsError):
        await proxy(Request(path="/foo"))


@pytest.mark.asyncio
async def test_random_picks_a_known_host():
    hosts = ["http://a", "http://b"]
    proxy_next, seen = recorder()
    proxy = random_middleware(Backend(host=hosts))(proxy_next)
    for _ in range(20):
        await proxy(Request(path="/x"))
    assert {r.url for r in seen} <= {h + "/x" for h in hosts}
    assert len(seen) == 20


def test_too_many_proxies_rejected():
    with pytest.raises(TooManyProxiesError):
        round_robin_middleware(Backend(host=["http://a"]))(noop_proxy, noop_proxy)