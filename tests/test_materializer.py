from __future__ import annotations

import moderngl
import numpy as np
import pytest

from voxelworld.render.scene import BlockGeometry, LineMaterial
from voxelworld.world.blocks import Block, MaterialRegistry
from voxelworld.world.chunk import Provenance
from voxelworld.world.errors import MaterializeError
from voxelworld.world.materializer import ChunkMaterializer, build_instances

S = 4


class FakeBuffer:
    def __init__(self, data):
        self.data = data
        self.released = False

    def release(self):
        self.released = True


class FakeContext:
    """Just enough of moderngl.Context for instance buffer uploads."""

    def __init__(self, fail_after=None):
        self.buffers = []
        self.fail_after = fail_after

    def buffer(self, data):
        if self.fail_after is not None and len(self.buffers) >= self.fail_after:
            raise moderngl.Error("out of memory")
        buf = FakeBuffer(data)
        self.buffers.append(buf)
        return buf


def _grid():
    grid = np.zeros(S ** 3, dtype=np.uint8)
    vol = grid.reshape(S, S, S)  # [z, y, x]
    vol[:, 0, :] = Block.STONE
    vol[2, 1, 3] = Block.GRASS
    return grid


def _materializer(**kw):
    return ChunkMaterializer(S, BlockGeometry(), MaterialRegistry(), LineMaterial((1.0, 1.0, 1.0)), **kw)


def test_instances_grouped_by_block_with_air_skipped():
    instances = build_instances(_grid(), S)

    assert set(instances) == {int(Block.STONE), int(Block.GRASS)}
    assert instances[Block.STONE].shape == (16, 3)
    assert instances[Block.GRASS].tolist() == [[1.5, -0.5, 0.5]]


def test_instance_offsets_stay_inside_the_chunk():
    grid = np.full(S ** 3, Block.DIRT, dtype=np.uint8)
    offsets = build_instances(grid, S)[Block.DIRT]

    assert offsets.dtype == np.float32
    assert offsets.min() == -1.5
    assert offsets.max() == 1.5


@pytest.mark.parametrize("grid", [np.zeros(S ** 3 - 1, dtype=np.uint8), np.zeros(S ** 3 + S, dtype=np.uint8)])
def test_wrong_grid_size_is_rejected(grid):
    with pytest.raises(MaterializeError):
        build_instances(grid, S)


def test_unknown_block_is_rejected():
    grid = _grid()
    grid[5] = 200
    with pytest.raises(MaterializeError, match="200"):
        build_instances(grid, S)


def test_materialize_remote_chunk():
    group = _materializer().materialize(_grid().tobytes(), 2, -1, Provenance.REMOTE)

    assert group.name == "chunk 2,-1"
    assert group.position.tolist() == [8.0, 0.0, -4.0]
    meshes = [c for c in group.children if hasattr(c, "count")]
    assert sorted(m.count for m in meshes) == [1, 16]
    hulls = [c for c in group.children if c.name == "hull"]
    assert len(hulls) == 1
    assert hulls[0].half == 2.0
    assert hulls[0].material.color == (0.0, 1.0, 1.0)
    assert hulls[0].material.opacity == pytest.approx(0.4)
    assert hulls[0].material.transparent


def test_local_chunk_hull_is_red_and_clone_is_private():
    mat = _materializer()
    group = mat.materialize(_grid(), 0, 0, Provenance.LOCAL)
    hull = [c for c in group.children if c.name == "hull"][0]

    assert hull.material.color == (1.0, 0.0, 0.0)
    assert hull.material.opacity == pytest.approx(0.3)
    assert hull.material is not mat.hull_material
    assert mat.hull_material.color == (1.0, 1.0, 1.0)


def test_meshes_borrow_shared_block_materials():
    mat = _materializer()
    group = mat.materialize(_grid(), 0, 0, Provenance.REMOTE)
    stone = [c for c in group.children if getattr(c, "block", None) == Block.STONE][0]

    assert stone.material is mat.materials.get(Block.STONE)
    group.release()
    assert not stone.material.disposed


def test_hulls_can_be_disabled():
    group = _materializer(hulls=False).materialize(_grid(), 0, 0, Provenance.REMOTE)
    assert all(c.name != "hull" for c in group.children)


def test_instance_buffers_are_uploaded_per_mesh():
    ctx = FakeContext()
    group = _materializer(ctx=ctx).materialize(_grid(), 0, 0, Provenance.REMOTE)

    assert len(ctx.buffers) == 2
    group.release()
    assert all(b.released for b in ctx.buffers)


def test_allocation_failure_releases_partial_chunk():
    ctx = FakeContext(fail_after=1)

    with pytest.raises(MaterializeError, match="allocation"):
        _materializer(ctx=ctx).materialize(_grid(), 0, 0, Provenance.REMOTE)
    assert len(ctx.buffers) == 1
    assert ctx.buffers[0].released


def test_block_without_material_is_rejected():
    mat = ChunkMaterializer(S, BlockGeometry(), MaterialRegistry({Block.STONE: (1.0, 1.0, 1.0)}), LineMaterial((1.0, 1.0, 1.0)))
    with pytest.raises(MaterializeError, match="no material"):
        mat.materialize(_grid(), 0, 0, Provenance.REMOTE)


def test_wide_integer_grid_out_of_byte_range_is_rejected():
    grid = _grid().astype(np.int16)
    grid[7] = 257  # a blind uint8 cast turns this into Block.STONE

    with pytest.raises(MaterializeError, match="byte range"):
        _materializer().materialize(grid, 0, 0, Provenance.REMOTE)


def test_wide_integer_grid_in_range_is_accepted():
    group = _materializer().materialize(_grid().astype(np.int32), 0, 0, Provenance.REMOTE)
    assert sorted(c.count for c in group.children if hasattr(c, "count")) == [1, 16]


def test_float_grid_is_rejected():
    with pytest.raises(MaterializeError, match="integers"):
        _materializer().materialize(_grid().astype(np.float32), 0, 0, Provenance.REMOTE)
