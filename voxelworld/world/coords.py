from __future__ import annotations

import math
from typing import Sequence, Tuple

ChunkKey = Tuple[int, int]


def _round_half_up(v: float) -> int:
    # halves go toward +inf (not banker's rounding)
    return int(math.floor(v + 0.5))


def chunk_of(position: Sequence[float], chunk: int) -> tuple[int, int]:
    """World position (x, y, z) -> chunk column (cx, cz)."""
    return _round_half_up(float(position[0]) / chunk), _round_half_up(float(position[2]) / chunk)


def key_of(cx: int, cz: int) -> ChunkKey:
    return (int(cx), int(cz))


def chunk_origin(cx: int, cz: int, chunk: int) -> tuple[float, float, float]:
    return float(cx * chunk), 0.0, float(cz * chunk)


def chebyshev(a: ChunkKey, b: ChunkKey) -> int:
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def euclidean(d: Sequence[float]) -> float:
    return math.sqrt(float(d[0]) ** 2 + float(d[1]) ** 2)


def load_priority(dx: int, dz: int, view_radius: int) -> float:
    """Closer chunks load first: max(0, R - |d|)."""
    return max(0.0, float(view_radius) - euclidean((dx, dz)))
