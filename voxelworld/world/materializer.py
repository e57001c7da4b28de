from __future__ import annotations

from typing import Dict

import moderngl
import numpy as np

from voxelworld.config import (
    HULL_COLOR_LOCAL,
    HULL_COLOR_REMOTE,
    HULL_OPACITY_LOCAL,
    HULL_OPACITY_REMOTE,
)
from voxelworld.render.scene import BlockGeometry, Group, InstancedMesh, LineBox, LineMaterial
from voxelworld.world.blocks import Block, MaterialRegistry, is_valid_block
from voxelworld.world.chunk import Provenance, as_voxel_grid
from voxelworld.world.coords import chunk_origin
from voxelworld.world.errors import MaterializeError


def build_instances(grid: np.ndarray, chunk: int) -> Dict[int, np.ndarray]:
    """Group voxel lattice centers by block id (air skipped).

    Offsets are chunk-local: voxel i sits at i - chunk/2 + 0.5 on every axis, so the
    chunk fills [-chunk/2, chunk/2]^3 around its origin.
    """
    chunk = int(chunk)
    expected = chunk * chunk * chunk
    if grid.size != expected:
        raise MaterializeError(f"voxel grid has {grid.size} cells, expected {expected}")

    vol = grid.reshape(chunk, chunk, chunk)  # [z, y, x]
    ids = np.unique(grid)
    bad = [int(b) for b in ids if not is_valid_block(int(b))]
    if bad:
        raise MaterializeError(f"unknown block ids {bad}")

    half = chunk / 2.0 - 0.5
    out: Dict[int, np.ndarray] = {}
    for block in ids:
        if int(block) == Block.AIR:
            continue
        zz, yy, xx = np.nonzero(vol == block)
        offsets = np.stack([xx, yy, zz], axis=1).astype(np.float32) - np.float32(half)
        out[int(block)] = offsets
    return out


class ChunkMaterializer:
    """Voxel grid -> chunk subtree (instanced meshes + debug hull).

    Geometry, block materials and the hull template are borrowed. Each chunk gets its
    own instance buffers and its own hull material clone.
    """

    def __init__(
        self,
        chunk: int,
        geometry: BlockGeometry,
        materials: MaterialRegistry,
        hull_material: LineMaterial,
        *,
        ctx: moderngl.Context | None = None,
        hulls: bool = True,
    ) -> None:
        self.chunk = int(chunk)
        self.geometry = geometry
        self.materials = materials
        self.hull_material = hull_material
        self.ctx = ctx
        self.hulls = bool(hulls)

    def _hull(self, provenance: Provenance) -> LineBox:
        mat = self.hull_material.clone()
        mat.transparent = True
        if provenance is Provenance.REMOTE:
            mat.color, mat.opacity = HULL_COLOR_REMOTE, HULL_OPACITY_REMOTE
        else:
            mat.color, mat.opacity = HULL_COLOR_LOCAL, HULL_OPACITY_LOCAL
        return LineBox(self.chunk / 2.0, mat)

    def materialize(self, data, cx: int, cz: int, provenance: Provenance) -> Group:
        grid = as_voxel_grid(data, self.chunk)
        instances = build_instances(grid, self.chunk)

        group = Group(f"chunk {cx},{cz}")
        try:
            for block, offsets in instances.items():
                if block not in self.materials:
                    raise MaterializeError(f"no material for block {block}")
                buf = None
                if self.ctx is not None:
                    try:
                        buf = self.ctx.buffer(offsets.tobytes())
                    except moderngl.Error as e:
                        raise MaterializeError(f"instance buffer allocation failed: {e}") from e
                group.add(InstancedMesh(block, offsets, self.materials.get(block), buffer=buf))
        except MaterializeError:
            group.release()
            raise

        if self.hulls:
            group.add(self._hull(provenance))
        group.set_position(*chunk_origin(cx, cz, self.chunk))
        return group
