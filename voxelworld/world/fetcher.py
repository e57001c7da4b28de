from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

import httpx

from voxelworld.config import (
    CAVES_SCALE,
    CAVES_THRESHOLD,
    CHUNK,
    CHUNK_CONTENT_TYPE,
    CHUNK_ENDPOINT,
    DEFAULT_SERVER_URL,
    DIRT_DEPTH,
    GRASS_DEPTH,
    MAX_RETRIES,
    REQUEST_TIMEOUT_S,
    RESPONSE_CACHE_SIZE,
    RETRY_BASE_DELAY_S,
    SURFACE_SCALE,
    WORLD_BASE_BLOCK,
    WORLD_SEED,
)
from voxelworld.world.errors import (
    EmptyBody,
    LoadCancelled,
    RetryableChunkError,
    SizeMismatch,
    TransportError,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchParams:
    base_url: str = DEFAULT_SERVER_URL
    endpoint: str = CHUNK_ENDPOINT
    chunk: int = CHUNK
    seed: str = WORLD_SEED
    base_block: int = WORLD_BASE_BLOCK
    surface_scale: float = SURFACE_SCALE
    caves_scale: float = CAVES_SCALE
    caves_threshold: float = CAVES_THRESHOLD
    grass_depth: int = GRASS_DEPTH
    dirt_depth: int = DIRT_DEPTH
    timeout_s: float = REQUEST_TIMEOUT_S
    max_retries: int = MAX_RETRIES
    retry_base_s: float = RETRY_BASE_DELAY_S
    cache_size: int = RESPONSE_CACHE_SIZE

    @property
    def expected_size(self) -> int:
        return self.chunk * self.chunk * self.chunk

    def backoff(self, retry: int) -> float:
        return self.retry_base_s * (2 ** retry)


class ChunkFetcher:
    """Fetch chunk voxel grids from the remote generator.

    Every attempt is bounded by params.timeout_s; retryable failures back off
    exponentially (1s, 2s, 4s by default). After the last retry the final error
    propagates and the caller decides what to do (local fallback).
    """

    def __init__(self, client: httpx.AsyncClient, params: FetchParams | None = None, *, lifecycle=None) -> None:
        self.client = client
        self.params = params or FetchParams()
        self.lifecycle = lifecycle
        self._cache: "OrderedDict[str, bytes]" = OrderedDict()
        self.requests_sent = 0

    def query(self, cx: int, cz: int) -> dict:
        p = self.params
        return {
            "size": p.chunk,
            "seed": p.seed,
            "base": int(p.base_block),
            "cx": int(cx),
            "cy": 0,
            "cz": int(cz),
            "surfaceScale": f"{p.surface_scale:.2f}",
            "cavesScale": f"{p.caves_scale:.2f}",
            "cavesThreshold": f"{p.caves_threshold:.2f}",
            "grassDepth": p.grass_depth,
            "dirtDepth": p.dirt_depth,
        }

    def url(self, cx: int, cz: int) -> str:
        base = self.params.base_url.rstrip("/") + self.params.endpoint
        return str(httpx.URL(base, params=self.query(cx, cz)))

    def _check_disposed(self) -> None:
        if self.lifecycle is not None and self.lifecycle.disposed:
            raise LoadCancelled("viewer disposed")

    def _remember(self, url: str, body: bytes) -> None:
        if self.params.cache_size <= 0:
            return
        self._cache[url] = body
        self._cache.move_to_end(url)
        while len(self._cache) > self.params.cache_size:
            self._cache.popitem(last=False)

    async def _request(self, url: str) -> httpx.Response:
        self.requests_sent += 1
        return await self.client.get(url, headers={"Accept": CHUNK_CONTENT_TYPE})

    async def fetch_once(self, cx: int, cz: int) -> bytes:
        url = self.url(cx, cz)
        cached = self._cache.get(url)
        if cached is not None:
            self._cache.move_to_end(url)
            return cached

        try:
            res = await asyncio.wait_for(self._request(url), timeout=self.params.timeout_s)
        except asyncio.TimeoutError as e:
            raise TransportError(f"timed out after {self.params.timeout_s:.1f}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
        self._check_disposed()

        if not res.is_success:
            raise TransportError(f"HTTP {res.status_code}: {res.reason_phrase}", status=res.status_code)

        content_type = res.headers.get("content-type", "")
        if CHUNK_CONTENT_TYPE not in content_type:
            log.warning("unexpected content type for chunk %d,%d: %s", cx, cz, content_type or "<none>")

        body = res.content
        if not body:
            raise EmptyBody("empty response body")
        if len(body) != self.params.expected_size:
            raise SizeMismatch(self.params.expected_size, len(body))

        self._remember(url, body)
        return body

    async def fetch(
        self,
        cx: int,
        cz: int,
        priority: float = 0.0,
        *,
        on_retry: Callable[[int, float], None] | None = None,
        on_attempt: Callable[[int], None] | None = None,
    ) -> bytes:
        """Fetch with retries. Raises the last RetryableChunkError once retries run out.

        `on_attempt(n)` runs before every attempt (0 first), `on_retry(n, delay)` before each backoff.
        """
        retries = int(self.params.max_retries)
        attempt = 0
        while True:
            self._check_disposed()
            if on_attempt is not None:
                on_attempt(attempt)
            try:
                body = await self.fetch_once(cx, cz)
            except RetryableChunkError as e:
                log.warning("chunk %d,%d load attempt %d failed: %s", cx, cz, attempt + 1, e)
                if attempt >= retries:
                    raise
                delay = self.params.backoff(attempt)
                log.info("retrying chunk %d,%d in %.0fms", cx, cz, delay * 1000.0)
                if on_retry is not None:
                    on_retry(attempt + 1, delay)
                await asyncio.sleep(delay)
                attempt += 1
                continue
            log.debug("fetched chunk %d,%d (priority %.2f, %d bytes)", cx, cz, priority, len(body))
            return body
