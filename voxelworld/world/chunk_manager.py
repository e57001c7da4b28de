from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Sequence

import numpy as np

from voxelworld.config import (
    CHUNK,
    EVICT_MARGIN,
    EVICT_STAGGER_S,
    FALLBACK_DIRT_DEPTH_MAX,
    FALLBACK_GRASS_DEPTH,
    LOAD_STAGGER_S,
    VIEW_RADIUS,
    WORLD_BASE_BLOCK,
)
from voxelworld.world.chunk import ChunkRecord, Provenance
from voxelworld.world.coords import ChunkKey, chebyshev, chunk_of, key_of, load_priority
from voxelworld.world.errors import (
    FallbackError,
    LoadCancelled,
    MaterializeError,
    RetryableChunkError,
)
from voxelworld.world.fallback import FallbackChunk, generate_fallback_chunk
from voxelworld.world.fetcher import ChunkFetcher
from voxelworld.world.lifecycle import Lifecycle, TimerHandle
from voxelworld.world.materializer import ChunkMaterializer
from voxelworld.world.registry import ChunkRegistry

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamParams:
    chunk: int = CHUNK
    view_radius: int = VIEW_RADIUS
    evict_margin: int = EVICT_MARGIN
    load_stagger_s: float = LOAD_STAGGER_S
    evict_stagger_s: float = EVICT_STAGGER_S
    base_block: int = WORLD_BASE_BLOCK
    fallback_grass_depth: int = FALLBACK_GRASS_DEPTH
    fallback_dirt_depth_max: int = FALLBACK_DIRT_DEPTH_MAX

    @property
    def keep_radius(self) -> int:
        return self.view_radius + self.evict_margin


class KeyState(Enum):
    IDLE = "idle"
    QUEUED = "queued"
    FETCHING = "fetching"
    RETRYING = "retrying"
    FALLBACK = "fallback"
    MATERIALIZING = "materializing"
    LIVE = "live"
    EVICTING = "evicting"


@dataclass(frozen=True)
class LoadRequest:
    key: ChunkKey
    cx: int
    cz: int
    priority: float
    delay: float


class ChunkManager:
    """Camera-driven chunk streaming.

    On every camera chunk change: queue loads for missing keys within the view
    radius (closest first, staggered), and schedule removal of live chunks that
    fell outside view_radius + evict_margin (Chebyshev).

    One load task per key at most; the task walks the key through
    FETCHING -> (RETRYING)* -> [FALLBACK] -> MATERIALIZING -> LIVE.
    """

    def __init__(
        self,
        params: StreamParams,
        registry: ChunkRegistry,
        fetcher: ChunkFetcher,
        materializer: ChunkMaterializer,
        lifecycle: Lifecycle,
        *,
        fallback: Callable[..., FallbackChunk] = generate_fallback_chunk,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.params = params
        self.registry = registry
        self.fetcher = fetcher
        self.materializer = materializer
        self.lifecycle = lifecycle
        self.fallback = fallback
        self.rng = np.random.default_rng() if rng is None else rng

        self.last_chunk: tuple[int, int] | None = None
        self.failures: Dict[ChunkKey, str] = {}

        self._states: Dict[ChunkKey, KeyState] = {}
        self._queued: Dict[ChunkKey, TimerHandle] = {}
        self._evicting: Dict[ChunkKey, TimerHandle] = {}
        self._tasks: Dict[ChunkKey, asyncio.Task] = {}

        lifecycle.add_finalizer(self._on_dispose)

    def _on_dispose(self) -> None:
        # timers and tasks are already cancelled, records released
        self._queued.clear()
        self._evicting.clear()
        self._tasks.clear()
        self._states.clear()

    # --- state ---
    def state_of(self, key: ChunkKey) -> KeyState:
        return self._states.get(key, KeyState.IDLE)

    def _set_state(self, key: ChunkKey, state: KeyState) -> None:
        if state is KeyState.IDLE:
            self._states.pop(key, None)
        else:
            self._states[key] = state

    def queued_keys(self) -> set[ChunkKey]:
        return set(self._queued.keys())

    def evicting_keys(self) -> set[ChunkKey]:
        return set(self._evicting.keys())

    @property
    def idle(self) -> bool:
        """No queued loads, loads in flight or pending removals."""
        return not (self._queued or self._tasks or self._evicting)

    # --- camera hook ---
    def update_camera(self, position: Sequence[float]) -> bool:
        cx, cz = chunk_of(position, self.params.chunk)
        if self.last_chunk == (cx, cz):
            return False
        self.last_chunk = (cx, cz)
        self.ensure_chunks_around(cx, cz)
        return True

    def ensure_chunks_around(self, cx: int, cz: int) -> list[LoadRequest]:
        if self.lifecycle.disposed:
            return []
        r = int(self.params.view_radius)

        candidates: list[tuple[ChunkKey, int, int, float]] = []
        for dz in range(-r, r + 1):
            for dx in range(-r, r + 1):
                key = key_of(cx + dx, cz + dz)
                if key in self._evicting:
                    # back in range before its removal fired
                    self.lifecycle.cancel(self._evicting.pop(key))
                    self._set_state(key, KeyState.LIVE)
                if self.registry.has(key) or self.registry.in_flight(key) or key in self._queued:
                    continue
                candidates.append((key, cx + dx, cz + dz, load_priority(dx, dz, r)))

        candidates.sort(key=lambda c: -c[3])

        scheduled: list[LoadRequest] = []
        for index, (key, kx, kz, priority) in enumerate(candidates):
            delay = index * self.params.load_stagger_s
            handle = self.lifecycle.call_later(delay, self._fire_load, key, kx, kz, priority)
            if handle is None:
                break
            self._queued[key] = handle
            self._set_state(key, KeyState.QUEUED)
            scheduled.append(LoadRequest(key, kx, kz, priority, delay))

        self._cancel_out_of_range(cx, cz)
        self._schedule_evictions(cx, cz)
        if scheduled:
            log.debug("chunk %d,%d: queued %d loads", cx, cz, len(scheduled))
        return scheduled

    def _out_of_range(self, key: ChunkKey, center: tuple[int, int]) -> bool:
        return chebyshev(key, center) > self.params.keep_radius

    def _cancel_out_of_range(self, cx: int, cz: int) -> None:
        for key in list(self._queued.keys()):
            if self._out_of_range(key, (cx, cz)):
                self.lifecycle.cancel(self._queued.pop(key))
                self._set_state(key, KeyState.IDLE)
        for key, task in list(self._tasks.items()):
            if self._out_of_range(key, (cx, cz)):
                log.debug("cancelling load of chunk %s (left view)", key)
                task.cancel()
                self._release_key(key, task)

    def _schedule_evictions(self, cx: int, cz: int) -> None:
        removal = [
            key for key, _ in self.registry.snapshot()
            if self._out_of_range(key, (cx, cz)) and key not in self._evicting
        ]
        for index, key in enumerate(removal):
            handle = self.lifecycle.call_later(index * self.params.evict_stagger_s, self._fire_evict, key)
            if handle is None:
                break
            self._evicting[key] = handle
            self._set_state(key, KeyState.EVICTING)

    def _fire_load(self, key: ChunkKey, cx: int, cz: int, priority: float) -> None:
        self._queued.pop(key, None)
        if self.lifecycle.disposed:
            return
        if self.registry.has(key) or self.registry.in_flight(key):
            # started directly while queued; its state belongs to that load
            return
        self._set_state(key, KeyState.IDLE)
        self.load_chunk_at(cx, cz, priority)

    def _fire_evict(self, key: ChunkKey) -> None:
        self._evicting.pop(key, None)
        if self.lifecycle.disposed or not self.registry.has(key):
            return
        if self.last_chunk is not None and not self._out_of_range(key, self.last_chunk):
            self._set_state(key, KeyState.LIVE)
            return
        self.registry.remove(key)
        self._set_state(key, KeyState.IDLE)
        log.info("pruned distant chunk %s", key)

    # --- loading ---
    def load_chunk_at(self, cx: int, cz: int, priority: float = 0.0) -> asyncio.Task | None:
        """Start loading one chunk. Returns the load task, or None if nothing to do.

        Asking again for a key that is already loading returns the running task.
        """
        key = key_of(cx, cz)
        if self.lifecycle.disposed or self.registry.has(key):
            return None
        if self.registry.in_flight(key):
            return self._tasks.get(key)

        task = self.lifecycle.spawn(self._load(key, int(cx), int(cz), float(priority)), name=f"chunk {cx},{cz}")
        if task is None:
            return None
        self.lifecycle.cancel(self._queued.pop(key, None))
        self.registry.mark_in_flight(key)
        self._tasks[key] = task
        self._set_state(key, KeyState.FETCHING)
        return task

    def _owns(self, key: ChunkKey) -> bool:
        task = self._tasks.get(key)
        return task is not None and task is asyncio.current_task()

    def _release_key(self, key: ChunkKey, task: asyncio.Task | None) -> None:
        if task is not None and self._tasks.get(key) is not task:
            return
        self._tasks.pop(key, None)
        self.registry.clear_in_flight(key)
        if self.state_of(key) is not KeyState.LIVE:
            self._set_state(key, KeyState.IDLE)

    def _abandoned(self, key: ChunkKey) -> bool:
        return self.lifecycle.disposed or not self._owns(key)

    def _fail(self, key: ChunkKey, reason: str) -> None:
        self.failures[key] = reason
        log.error("chunk %s permanently failed: %s", key, reason)

    async def _load(self, key: ChunkKey, cx: int, cz: int, priority: float) -> None:
        me = asyncio.current_task()
        try:
            await self._run_load(key, cx, cz, priority)
        except LoadCancelled:
            log.debug("load of chunk %s dropped after disposal", key)
        except asyncio.CancelledError:
            log.debug("load of chunk %s cancelled", key)
            raise
        finally:
            self._release_key(key, me)

    def _generate_local(self) -> np.ndarray:
        try:
            return self.fallback(
                self.params.chunk,
                self.params.base_block,
                grass_depth=self.params.fallback_grass_depth,
                dirt_depth_max=self.params.fallback_dirt_depth_max,
                rng=self.rng,
            ).grid
        except FallbackError:
            raise
        except Exception as e:
            raise FallbackError(f"local generation failed: {type(e).__name__}: {e}") from e

    async def _run_load(self, key: ChunkKey, cx: int, cz: int, priority: float) -> None:
        def on_retry(attempt: int, delay: float) -> None:
            if self._owns(key):
                self._set_state(key, KeyState.RETRYING)

        def on_attempt(attempt: int) -> None:
            if self._owns(key):
                self._set_state(key, KeyState.FETCHING)

        self._set_state(key, KeyState.FETCHING)
        provenance = Provenance.REMOTE
        try:
            grid = await self.fetcher.fetch(cx, cz, priority, on_retry=on_retry, on_attempt=on_attempt)
        except RetryableChunkError as e:
            if self._abandoned(key):
                return
            log.info("falling back to local generation for chunk %s (%s)", key, e)
            self._set_state(key, KeyState.FALLBACK)
            provenance = Provenance.LOCAL
            try:
                grid = self._generate_local()
            except FallbackError as fe:
                self._fail(key, str(fe))
                return

        if self._abandoned(key):
            return
        self._set_state(key, KeyState.MATERIALIZING)
        try:
            node = self.materializer.materialize(grid, cx, cz, provenance)
        except MaterializeError as e:
            self._fail(key, str(e))
            return

        if self._abandoned(key) or self.registry.has(key):
            node.release()
            return
        self.registry.publish(key, ChunkRecord(key=key, node=node, provenance=provenance))
        self.failures.pop(key, None)
        self._set_state(key, KeyState.LIVE)
        log.info("loaded chunk %s (%s)", key, provenance.value)
