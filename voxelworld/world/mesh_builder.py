from __future__ import annotations

import numpy as np

# (normal, 4 corners CCW seen from outside) for a unit cube centered at 0
_FACES = (
    ((1, 0, 0), ((1, -1, 1), (1, -1, -1), (1, 1, -1), (1, 1, 1))),
    ((-1, 0, 0), ((-1, -1, -1), (-1, -1, 1), (-1, 1, 1), (-1, 1, -1))),
    ((0, 1, 0), ((-1, 1, 1), (1, 1, 1), (1, 1, -1), (-1, 1, -1))),
    ((0, -1, 0), ((-1, -1, -1), (1, -1, -1), (1, -1, 1), (-1, -1, 1))),
    ((0, 0, 1), ((-1, -1, 1), (1, -1, 1), (1, 1, 1), (-1, 1, 1))),
    ((0, 0, -1), ((1, -1, -1), (-1, -1, -1), (-1, 1, -1), (1, 1, -1))),
)


def build_cube(size: float = 1.0) -> tuple[np.ndarray, np.ndarray]:
    """Return (vbo, ibo) for one block.

    Vertex layout: pos(3), norm(3) float32, 4 vertices per face so normals stay flat.
    """
    half = float(size) * 0.5
    verts: list[list[float]] = []
    idx: list[int] = []
    for normal, corners in _FACES:
        base = len(verts)
        for c in corners:
            verts.append([c[0] * half, c[1] * half, c[2] * half, *normal])
        idx.extend([base, base + 1, base + 2, base, base + 2, base + 3])
    return np.array(verts, dtype=np.float32), np.array(idx, dtype=np.uint32)


def build_box_lines(half: float) -> tuple[np.ndarray, np.ndarray]:
    """Return (positions (8,3), line indices (24,)) for an axis-aligned box [-half, half]^3."""
    h = float(half)
    corners = np.array(
        [[x, y, z] for z in (-h, h) for y in (-h, h) for x in (-h, h)],
        dtype=np.float32,
    )
    edges: list[int] = []
    for a in range(8):
        for bit in (1, 2, 4):
            b = a | bit
            if b != a:
                edges.extend([a, b])
    return corners, np.array(edges, dtype=np.uint32)
