from __future__ import annotations

import asyncio

import httpx
import numpy as np
import pytest

from voxelworld.render.scene import create_scene_context
from voxelworld.world.blocks import Block
from voxelworld.world.chunk_manager import StreamParams
from voxelworld.world.fetcher import FetchParams
from voxelworld.world.world import World, WorldParams

TEST_CHUNK = 4


class ChunkServer:
    """Scripted stand-in for the remote chunk generator.

    `script` is consumed one entry per request: an int is a bare status code, bytes
    is a 200 body, an httpx.Response is returned as is. Once empty, every request
    gets a full chunk of `block`.
    """

    def __init__(self, chunk: int = TEST_CHUNK, script=None, *, block: int = Block.STONE, gate=None, on_request=None):
        self.chunk = chunk
        self.script = list(script or [])
        self.block = int(block)
        self.gate = gate  # optional (key -> asyncio.Event) holding requests back
        self.on_request = on_request
        self.calls: list[tuple[int, int]] = []
        self.requests: list[httpx.Request] = []

    def full_body(self) -> bytes:
        return bytes([self.block]) * (self.chunk ** 3)

    def _respond(self):
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, int):
                return httpx.Response(item)
            if isinstance(item, bytes):
                return httpx.Response(200, content=item, headers={"content-type": "application/octet-stream"})
            return item
        return httpx.Response(200, content=self.full_body(), headers={"content-type": "application/octet-stream"})

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (int(request.url.params["cx"]), int(request.url.params["cz"]))
        self.calls.append(key)
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(key)
        if self.gate is not None and key in self.gate:
            await self.gate[key].wait()
        return self._respond()


@pytest.fixture
def chunk_server():
    return ChunkServer


@pytest.fixture
def make_world():
    def _make(
        server: ChunkServer,
        *,
        chunk: int = TEST_CHUNK,
        view_radius: int = 1,
        evict_margin: int = 1,
        load_stagger_s: float = 0.001,
        evict_stagger_s: float = 0.001,
        retry_base_s: float = 0.005,
        timeout_s: float = 1.0,
        seed: int = 7,
    ) -> World:
        params = WorldParams(
            stream=StreamParams(
                chunk=chunk,
                view_radius=view_radius,
                evict_margin=evict_margin,
                load_stagger_s=load_stagger_s,
                evict_stagger_s=evict_stagger_s,
            ),
            fetch=FetchParams(
                base_url="http://chunks.test",
                chunk=chunk,
                retry_base_s=retry_base_s,
                timeout_s=timeout_s,
            ),
        )
        client = httpx.AsyncClient(transport=httpx.MockTransport(server))
        return World(create_scene_context(), params, client, rng=np.random.default_rng(seed))

    return _make


@pytest.fixture
def settle():
    async def _settle(world: World, timeout: float = 5.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not world.manager.idle:
            if loop.time() > deadline:
                raise AssertionError(f"world did not settle: {world.stats()}")
            await asyncio.sleep(0.002)

    return _settle


@pytest.fixture
def close_world():
    async def _close(world: World) -> None:
        await world.aclose()
        await world.client.aclose()

    return _close
