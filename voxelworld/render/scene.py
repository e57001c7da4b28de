from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

from voxelworld.render.camera import FlyCamera
from voxelworld.util.math import normalize
from voxelworld.world.blocks import BlockMaterial, MaterialRegistry
from voxelworld.world.mesh_builder import build_cube


class Node:
    """Minimal scene graph node: a translation plus children.

    release() frees what the node owns; borrowed resources are left alone.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.position = np.zeros(3, dtype=np.float32)
        self.parent: Node | None = None
        self.children: list[Node] = []
        self.visible = True

    def add(self, *nodes: "Node") -> None:
        for node in nodes:
            if node.parent is not None:
                node.parent.remove(node)
            node.parent = self
            self.children.append(node)

    def remove(self, *nodes: "Node") -> None:
        for node in nodes:
            if node.parent is self:
                self.children.remove(node)
                node.parent = None

    def set_position(self, x: float, y: float, z: float) -> None:
        self.position[:] = (x, y, z)

    def world_position(self) -> np.ndarray:
        p = self.position.copy()
        node = self.parent
        while node is not None:
            p += node.position
            node = node.parent
        return p

    def traverse(self) -> Iterator["Node"]:
        yield self
        for child in self.children:
            yield from child.traverse()

    def release(self) -> None:
        for child in self.children:
            child.release()


class Group(Node):
    pass


@dataclass
class LineMaterial:
    color: tuple[float, float, float]
    opacity: float = 1.0
    transparent: bool = False
    disposed: bool = False

    def clone(self) -> "LineMaterial":
        return LineMaterial(tuple(self.color), float(self.opacity), bool(self.transparent))

    def dispose(self) -> None:
        self.disposed = True


class InstancedMesh(Node):
    """Many copies of the shared block geometry, one per instance offset.

    Owns its instance buffer and vertex array; borrows geometry and material.
    """

    def __init__(self, block: int, offsets: np.ndarray, material: BlockMaterial, *, buffer=None) -> None:
        super().__init__(name=f"block-{int(block)}")
        self.block = int(block)
        self.offsets = np.ascontiguousarray(offsets, dtype=np.float32).reshape(-1, 3)
        self.material = material
        self.buffer = buffer
        self.vao = None  # built lazily by the renderer

    @property
    def count(self) -> int:
        return int(self.offsets.shape[0])

    def release(self) -> None:
        for obj in (self.vao, self.buffer):
            if obj is not None:
                obj.release()
        self.vao = None
        self.buffer = None


class LineBox(Node):
    """Wireframe box [-half, half]^3. The material is a per-box clone owned here."""

    def __init__(self, half: float, material: LineMaterial) -> None:
        super().__init__(name="hull")
        self.half = float(half)
        self.material = material

    def release(self) -> None:
        self.material.dispose()


class Sun(Node):
    """Directional light that trails the camera so shading stays stable while flying."""

    def __init__(self, direction: Sequence[float] = (0.35, 0.9, 0.2)) -> None:
        super().__init__(name="sun")
        self.direction = normalize(np.array(direction, dtype=np.float32))
        self.target = np.zeros(3, dtype=np.float32)

    def follow(self, camera: FlyCamera, target: Sequence[float], distance: float) -> None:
        t = np.asarray(target, dtype=np.float32)
        self.target = np.array([camera.position[0] + t[0], t[1], camera.position[2] + t[2]], dtype=np.float32)
        self.position = (self.target + self.direction * np.float32(distance)).astype(np.float32)


class BlockGeometry:
    """The unit cube every instanced mesh draws. Owned by the scene context."""

    def __init__(self) -> None:
        self.vertices, self.indices = build_cube(1.0)
        self.vbo = None
        self.ibo = None

    def upload(self, ctx) -> None:
        if self.vbo is None:
            self.vbo = ctx.buffer(self.vertices.tobytes())
            self.ibo = ctx.buffer(self.indices.tobytes())

    def release(self) -> None:
        for obj in (self.vbo, self.ibo):
            if obj is not None:
                obj.release()
        self.vbo = None
        self.ibo = None


@dataclass
class SceneContext:
    scene: Group
    camera: FlyCamera
    sun: Sun
    world_group: Group
    geometry: BlockGeometry
    materials: MaterialRegistry

    def dispose(self) -> None:
        """Release the shared resources. Chunk records never do this."""
        for mat in self.materials.all_materials():
            mat.dispose()
        self.geometry.release()


def create_scene_context(camera_position: Sequence[float] = (0.0, 0.0, 0.0), **camera_kw) -> SceneContext:
    scene = Group("scene")
    camera = FlyCamera(camera_position, **camera_kw)
    sun = Sun()
    world_group = Group("world")
    scene.add(sun, world_group)
    return SceneContext(
        scene=scene,
        camera=camera,
        sun=sun,
        world_group=world_group,
        geometry=BlockGeometry(),
        materials=MaterialRegistry(),
    )
