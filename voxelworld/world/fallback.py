from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from voxelworld.world.blocks import Block
from voxelworld.world.errors import FallbackError

PAINT_POLICIES = ("contiguous", "any")


@dataclass
class FallbackChunk:
    grid: np.ndarray
    dirt_depth: int


def generate_chunk(size: int, base: int) -> np.ndarray:
    """Solid chunk of the base block, flat layout x + size*(y + size*z)."""
    size = int(size)
    return np.full(size * size * size, int(base), dtype=np.uint8)


def paint_layer(
    grid: np.ndarray,
    size: int,
    base: int,
    paint: int,
    depth: int,
    *,
    policy: str = "contiguous",
) -> np.ndarray:
    """Repaint the top `depth` base cells of every column (in place).

    Policies:
      - contiguous: only the unbroken run of base cells starting at the column surface,
        so the paint forms a skin with no holes punched through it.
      - any: the first `depth` base cells from the top, skipping gaps and other blocks.
    """
    if policy not in PAINT_POLICIES:
        raise ValueError(f"unknown paint policy: {policy!r}")
    depth = int(depth)
    if depth <= 0:
        return grid

    size = int(size)
    vol = grid.reshape(size, size, size)  # [z, y, x]
    # walk columns top-down
    top = vol[:, ::-1, :]
    is_base = top == np.uint8(base)

    if policy == "any":
        mask = is_base & (np.cumsum(is_base, axis=1) <= depth)
    else:
        occupied = top != np.uint8(Block.AIR)
        started = np.cumsum(occupied, axis=1) > 0
        broken = np.cumsum(started & ~is_base, axis=1) > 0
        run = is_base & started & ~broken
        mask = run & (np.cumsum(run, axis=1) <= depth)

    top[mask] = np.uint8(paint)
    return grid


def generate_fallback_chunk(
    size: int,
    base: int,
    *,
    grass_depth: int = 2,
    dirt_depth_max: int = 4,
    rng: np.random.Generator | None = None,
) -> FallbackChunk:
    """Cheap local stand-in for the remote generator.

    Dirt depth is drawn from 1..dirt_depth_max on every call, so two fallbacks
    for the same key can differ.
    """
    rng = np.random.default_rng() if rng is None else rng
    try:
        grid = generate_chunk(size, base)
        paint_layer(grid, size, base, Block.GRASS, grass_depth, policy="contiguous")
        dirt_depth = int(rng.integers(1, int(dirt_depth_max) + 1))
        paint_layer(grid, size, base, Block.DIRT, dirt_depth, policy="any")
    except (ValueError, TypeError, OverflowError) as e:
        raise FallbackError(f"local generation failed: {e}") from e
    return FallbackChunk(grid=grid, dirt_depth=dirt_depth)
