from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

import httpx
import moderngl
import numpy as np

from voxelworld.render.scene import LineMaterial, SceneContext
from voxelworld.config import HULL_COLOR_REMOTE, HULL_OPACITY_REMOTE
from voxelworld.world.chunk_manager import ChunkManager, StreamParams
from voxelworld.world.fetcher import ChunkFetcher, FetchParams
from voxelworld.world.lifecycle import Lifecycle
from voxelworld.world.materializer import ChunkMaterializer
from voxelworld.world.registry import ChunkRegistry

log = logging.getLogger(__name__)


@dataclass
class WorldParams:
    stream: StreamParams = field(default_factory=StreamParams)
    fetch: FetchParams = field(default_factory=FetchParams)
    hulls: bool = True


class World:
    """One viewer's streaming scope: registry, fetcher, materializer, controller, lifecycle.

    Two World instances never share chunk state.
    """

    def __init__(
        self,
        scene_ctx: SceneContext,
        params: WorldParams,
        client: httpx.AsyncClient | None = None,
        *,
        ctx: moderngl.Context | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        if params.stream.chunk != params.fetch.chunk:
            raise ValueError(f"chunk size mismatch: stream={params.stream.chunk} fetch={params.fetch.chunk}")
        self.scene_ctx = scene_ctx
        self.params = params

        self._owns_client = client is None
        self.client = client if client is not None else httpx.AsyncClient()

        self.lifecycle = Lifecycle()
        self.registry = ChunkRegistry(scene_ctx.world_group)
        self.lifecycle.bind_registry(self.registry)

        self.hull_material = LineMaterial(HULL_COLOR_REMOTE, HULL_OPACITY_REMOTE, transparent=True)
        self.fetcher = ChunkFetcher(self.client, params.fetch, lifecycle=self.lifecycle)
        self.materializer = ChunkMaterializer(
            params.stream.chunk,
            scene_ctx.geometry,
            scene_ctx.materials,
            self.hull_material,
            ctx=ctx,
            hulls=params.hulls,
        )
        self.manager = ChunkManager(
            params.stream,
            self.registry,
            self.fetcher,
            self.materializer,
            self.lifecycle,
            rng=rng,
        )
        self.lifecycle.add_finalizer(self._detach)

    @property
    def disposed(self) -> bool:
        return self.lifecycle.disposed

    def _detach(self) -> None:
        self.hull_material.dispose()
        scene = self.scene_ctx.scene
        scene.remove(self.scene_ctx.world_group, self.scene_ctx.sun)

    def update_camera(self, position: Sequence[float]) -> bool:
        return self.manager.update_camera(position)

    def ensure_chunks_around(self, cx: int, cz: int):
        return self.manager.ensure_chunks_around(cx, cz)

    def stats(self) -> dict:
        return {
            "live": len(self.registry),
            "inflight": len(self.registry.in_flight_keys()),
            "queued": len(self.manager.queued_keys()),
            "evicting": len(self.manager.evicting_keys()),
            "failed": len(self.manager.failures),
        }

    def shutdown(self) -> None:
        self.lifecycle.dispose()

    async def aclose(self) -> None:
        self.shutdown()
        await self.lifecycle.drain()
        if self._owns_client:
            await self.client.aclose()
        log.info("world cleanup completed")
