from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterator


class Block(IntEnum):
    AIR = 0
    STONE = 1
    DIRT = 2
    GRASS = 3
    SAND = 4
    WATER = 5
    WOOD = 6
    LEAVES = 7
    BEDROCK = 8


BLOCK_COLORS: Dict[Block, tuple[float, float, float]] = {
    Block.STONE: (0.50, 0.50, 0.52),
    Block.DIRT: (0.45, 0.31, 0.18),
    Block.GRASS: (0.30, 0.62, 0.22),
    Block.SAND: (0.86, 0.80, 0.55),
    Block.WATER: (0.16, 0.38, 0.75),
    Block.WOOD: (0.42, 0.30, 0.16),
    Block.LEAVES: (0.18, 0.45, 0.16),
    Block.BEDROCK: (0.18, 0.18, 0.20),
}


def is_valid_block(value: int) -> bool:
    return 0 <= int(value) <= int(max(Block))


@dataclass
class BlockMaterial:
    block: Block
    color: tuple[float, float, float]
    disposed: bool = False

    def dispose(self) -> None:
        self.disposed = True


class MaterialRegistry:
    """Block id -> material. Shared by every chunk; only the scene owner disposes it."""

    def __init__(self, colors: Dict[Block, tuple[float, float, float]] | None = None) -> None:
        colors = BLOCK_COLORS if colors is None else colors
        self._materials: Dict[Block, BlockMaterial] = {
            Block(b): BlockMaterial(Block(b), tuple(c)) for b, c in colors.items()
        }

    def __contains__(self, block: int) -> bool:
        return is_valid_block(block) and Block(block) in self._materials

    def get(self, block: int) -> BlockMaterial:
        return self._materials[Block(block)]

    def all_materials(self) -> Iterator[BlockMaterial]:
        return iter(self._materials.values())
