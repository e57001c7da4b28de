from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from voxelworld.world.errors import EmptyBody, LoadCancelled, SizeMismatch, TransportError
from voxelworld.world.fetcher import ChunkFetcher, FetchParams
from voxelworld.world.lifecycle import Lifecycle

CHUNK = 4
FULL = bytes([1]) * CHUNK ** 3


def _fetcher(handler, **overrides) -> ChunkFetcher:
    params = FetchParams(base_url="http://chunks.test", chunk=CHUNK, retry_base_s=0.001, **overrides)
    return ChunkFetcher(httpx.AsyncClient(transport=httpx.MockTransport(handler)), params)


def _ok(body: bytes = FULL, content_type: str = "application/octet-stream") -> httpx.Response:
    return httpx.Response(200, content=body, headers={"content-type": content_type})


def test_url_carries_generator_parameters():
    fetcher = _fetcher(lambda r: _ok(), seed="hello world", base_block=2)
    url = httpx.URL(fetcher.url(-3, 7))

    assert url.path == "/api/chunk"
    assert dict(url.params) == {
        "size": "4",
        "seed": "hello world",
        "base": "2",
        "cx": "-3",
        "cy": "0",
        "cz": "7",
        "surfaceScale": "0.06",
        "cavesScale": "0.18",
        "cavesThreshold": "0.70",
        "grassDepth": "3",
        "dirtDepth": "3",
    }


def test_successful_fetch_returns_body_and_asks_for_octet_stream():
    seen = []

    def handler(request):
        seen.append(request.headers["accept"])
        return _ok()

    async def scenario():
        fetcher = _fetcher(handler)
        body = await fetcher.fetch(0, 0)
        await fetcher.client.aclose()
        return body

    assert asyncio.run(scenario()) == FULL
    assert seen == ["application/octet-stream"]


@pytest.mark.parametrize(
    "bad, error",
    [
        (httpx.Response(500), TransportError),
        (httpx.Response(404), TransportError),
        (_ok(b""), EmptyBody),
        (_ok(FULL[:-1]), SizeMismatch),
        (_ok(FULL + b"\x01"), SizeMismatch),
    ],
)
def test_single_attempt_failures_are_classified(bad, error):
    async def scenario():
        fetcher = _fetcher(lambda r: bad)
        try:
            with pytest.raises(error):
                await fetcher.fetch_once(0, 0)
        finally:
            await fetcher.client.aclose()

    asyncio.run(scenario())


def test_http_status_is_kept_on_transport_error():
    async def scenario():
        fetcher = _fetcher(lambda r: httpx.Response(503))
        with pytest.raises(TransportError) as info:
            await fetcher.fetch_once(0, 0)
        await fetcher.client.aclose()
        return info.value

    assert asyncio.run(scenario()).status == 503


def test_retries_back_off_exponentially_then_give_up():
    calls = []
    delays = []

    def handler(request):
        calls.append(request)
        return _ok(FULL[:-1])

    async def scenario():
        fetcher = _fetcher(handler)
        with pytest.raises(SizeMismatch) as info:
            await fetcher.fetch(1, 2, on_retry=lambda attempt, delay: delays.append((attempt, delay)))
        await fetcher.client.aclose()
        return info.value

    err = asyncio.run(scenario())
    assert len(calls) == 4
    assert delays == [(1, 0.001), (2, 0.002), (3, 0.004)]
    assert (err.expected, err.actual) == (64, 63)


def test_recovers_after_transient_failures():
    script = [httpx.Response(500), _ok(b""), _ok()]
    attempts = []

    async def scenario():
        fetcher = _fetcher(lambda r: script.pop(0))
        body = await fetcher.fetch(0, 0, on_attempt=attempts.append)
        await fetcher.client.aclose()
        return body, fetcher.requests_sent

    body, sent = asyncio.run(scenario())
    assert body == FULL
    assert sent == 3
    assert attempts == [0, 1, 2]


def test_default_backoff_is_one_two_four_seconds():
    params = FetchParams()
    assert [params.backoff(i) for i in range(params.max_retries)] == [1.0, 2.0, 4.0]
    assert params.timeout_s == 10.0


def test_network_error_is_retryable_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        fetcher = _fetcher(handler, max_retries=1)
        with pytest.raises(TransportError):
            await fetcher.fetch(0, 0)
        await fetcher.client.aclose()
        return fetcher.requests_sent

    assert asyncio.run(scenario()) == 2


def test_attempt_timeout_is_transport_error():
    async def handler(request):
        await asyncio.sleep(1.0)
        return _ok()

    async def scenario():
        fetcher = _fetcher(handler, timeout_s=0.02, max_retries=0)
        with pytest.raises(TransportError, match="timed out"):
            await fetcher.fetch(0, 0)
        await fetcher.client.aclose()

    asyncio.run(scenario())


def test_unexpected_content_type_warns_but_is_accepted(caplog):
    async def scenario():
        fetcher = _fetcher(lambda r: _ok(content_type="text/plain"))
        body = await fetcher.fetch(3, 4)
        await fetcher.client.aclose()
        return body

    with caplog.at_level(logging.WARNING, logger="voxelworld.world.fetcher"):
        assert asyncio.run(scenario()) == FULL
    assert any("unexpected content type for chunk 3,4" in r.getMessage() for r in caplog.records)


def test_successful_responses_are_reused_per_url():
    calls = []

    def handler(request):
        calls.append(request.url)
        return _ok()

    async def scenario():
        fetcher = _fetcher(handler)
        await fetcher.fetch(0, 0)
        await fetcher.fetch(0, 0)
        await fetcher.fetch(1, 0)
        await fetcher.client.aclose()

    asyncio.run(scenario())
    assert len(calls) == 2


def test_cache_is_bounded():
    calls = []

    def handler(request):
        calls.append(request.url)
        return _ok()

    async def scenario():
        fetcher = _fetcher(handler, cache_size=1)
        await fetcher.fetch(0, 0)
        await fetcher.fetch(1, 0)
        await fetcher.fetch(0, 0)
        await fetcher.client.aclose()

    asyncio.run(scenario())
    assert len(calls) == 3


def test_cancellation_is_not_retried():
    calls = []

    async def handler(request):
        calls.append(request)
        await asyncio.sleep(10.0)
        return _ok()

    async def scenario():
        fetcher = _fetcher(handler)
        task = asyncio.get_running_loop().create_task(fetcher.fetch(0, 0))
        while not calls:
            await asyncio.sleep(0.001)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.01)
        await fetcher.client.aclose()

    asyncio.run(scenario())
    assert len(calls) == 1


def test_disposal_during_request_discards_the_response():
    lifecycle = Lifecycle()

    def handler(request):
        lifecycle.dispose()
        return _ok()

    async def scenario():
        fetcher = _fetcher(handler)
        fetcher.lifecycle = lifecycle
        with pytest.raises(LoadCancelled):
            await fetcher.fetch(0, 0)
        await fetcher.client.aclose()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert fetcher.requests_sent == 1
