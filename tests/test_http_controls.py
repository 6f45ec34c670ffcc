import asyncio

import httpx
import pytest

from pegeldict.errors import MalformedPayloadError, TransportError
from pegeldict.utils.http import HttpMetrics, RequestThrottle, ThrottledHttpClient


def test_throttle_caps_concurrent_requests() -> None:
    throttle = RequestThrottle(max_concurrent=2)
    peak = 0
    active = 0

    async def worker() -> None:
        nonlocal peak, active
        async with throttle.slot():
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            active -= 1

    async def run() -> None:
        await asyncio.gather(*(worker() for _ in range(10)))

    asyncio.run(run())
    assert peak == 2
    assert throttle.outstanding == 0


def test_throttle_release_is_floored_at_zero() -> None:
    throttle = RequestThrottle(max_concurrent=1)

    async def run() -> None:
        await throttle.release()
        await throttle.release()

    asyncio.run(run())
    assert throttle.outstanding == 0


def test_throttle_releases_slot_on_failure_and_cancellation() -> None:
    throttle = RequestThrottle(max_concurrent=1)

    async def failing() -> None:
        async with throttle.slot():
            raise RuntimeError("boom")

    async def hanging() -> None:
        async with throttle.slot():
            await asyncio.sleep(3600)

    async def run() -> None:
        with pytest.raises(RuntimeError):
            await failing()
        task = asyncio.create_task(hanging())
        await asyncio.sleep(0)
        assert throttle.outstanding == 1
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        # the freed slot admits the next caller
        await asyncio.wait_for(throttle.acquire(), timeout=1)
        await throttle.release()

    asyncio.run(run())
    assert throttle.outstanding == 0


def test_throttle_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        RequestThrottle(max_concurrent=0)


def _client(handler) -> tuple[httpx.AsyncClient, HttpMetrics]:
    metrics = HttpMetrics()
    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), metrics


def test_get_json_sends_user_agent_and_counts_statuses() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    async def run():
        client, metrics = _client(handler)
        async with client:
            http = ThrottledHttpClient(client, RequestThrottle(2), "pegeldict-test", metrics)
            payload = await http.get_json("https://example.com/x", params={"a": 1}, headers={"Accept-Language": "en"})
        return payload, metrics

    payload, metrics = asyncio.run(run())
    assert payload == {"ok": True}
    assert seen[0].headers["User-Agent"] == "pegeldict-test"
    assert seen[0].headers["Accept-Language"] == "en"
    assert seen[0].url.params["a"] == "1"
    assert metrics.total_requests == 1
    assert metrics.status_code_counts[200] == 1


def test_get_json_raises_transport_error_on_non_2xx() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="busy")

    async def run() -> None:
        client, metrics = _client(handler)
        async with client:
            throttle = RequestThrottle(1)
            http = ThrottledHttpClient(client, throttle, "pegeldict-test", metrics)
            with pytest.raises(TransportError) as info:
                await http.get_json("https://example.com/x")
            assert info.value.status_code == 503
            assert throttle.outstanding == 0

    asyncio.run(run())


def test_get_json_wraps_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async def run() -> HttpMetrics:
        client, metrics = _client(handler)
        async with client:
            http = ThrottledHttpClient(client, RequestThrottle(1), "pegeldict-test", metrics)
            with pytest.raises(TransportError) as info:
                await http.get_json("https://example.com/x")
            assert info.value.status_code is None
            assert isinstance(info.value.__cause__, httpx.ConnectError)
        return metrics

    metrics = asyncio.run(run())
    assert metrics.transport_errors == 1


def test_get_json_rejects_invalid_json() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>not json</html>")

    async def run() -> None:
        client, metrics = _client(handler)
        async with client:
            http = ThrottledHttpClient(client, RequestThrottle(1), "pegeldict-test", metrics)
            with pytest.raises(MalformedPayloadError):
                await http.get_json("https://example.com/x")

    asyncio.run(run())
