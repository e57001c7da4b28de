from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from voxelworld.render.scene import Group, InstancedMesh, LineBox
from voxelworld.world.coords import ChunkKey
from voxelworld.world.errors import MaterializeError


class Provenance(Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass
class ChunkRecord:
    key: ChunkKey
    node: Group  # owned subtree: instanced meshes + debug hull
    provenance: Provenance

    @property
    def origin(self) -> tuple[float, float, float]:
        p = self.node.position
        return float(p[0]), float(p[1]), float(p[2])

    @property
    def hull(self) -> LineBox | None:
        for child in self.node.children:
            if isinstance(child, LineBox):
                return child
        return None

    def meshes(self) -> list[InstancedMesh]:
        return [c for c in self.node.children if isinstance(c, InstancedMesh)]

    def instance_count(self) -> int:
        return int(sum(m.count for m in self.meshes()))

    def release(self) -> None:
        self.node.release()


def as_voxel_grid(data, chunk: int) -> np.ndarray:
    """View raw bytes as a flat uint8 grid (x + CHUNK*(y + CHUNK*z))."""
    if isinstance(data, np.ndarray):
        if data.dtype != np.uint8:
            if data.dtype.kind not in "iu":
                raise MaterializeError(f"voxel grid must hold integers, got {data.dtype}")
            if data.size and (data.min() < 0 or data.max() > 255):
                raise MaterializeError(f"block ids out of byte range [{data.min()}, {data.max()}]")
        return np.ascontiguousarray(data, dtype=np.uint8).reshape(-1)
    return np.frombuffer(bytes(data), dtype=np.uint8)
