from __future__ import annotations

import logging
from typing import Dict, Iterator, Set

from voxelworld.render.scene import Node
from voxelworld.world.chunk import ChunkRecord
from voxelworld.world.coords import ChunkKey
from voxelworld.world.errors import DuplicatePublish

log = logging.getLogger(__name__)


class ChunkRegistry:
    """Live chunk records keyed by chunk coordinate, plus the in-flight key set.

    Only touched from the event loop thread, so there is no locking.
    """

    def __init__(self, parent: Node) -> None:
        self.parent = parent
        self._live: Dict[ChunkKey, ChunkRecord] = {}
        self._inflight: Set[ChunkKey] = set()

    def __len__(self) -> int:
        return len(self._live)

    def __iter__(self) -> Iterator[ChunkKey]:
        return iter(list(self._live.keys()))

    def has(self, key: ChunkKey) -> bool:
        return key in self._live

    def get(self, key: ChunkKey) -> ChunkRecord | None:
        return self._live.get(key)

    def mark_in_flight(self, key: ChunkKey) -> None:
        self._inflight.add(key)

    def clear_in_flight(self, key: ChunkKey) -> None:
        self._inflight.discard(key)

    def in_flight(self, key: ChunkKey) -> bool:
        return key in self._inflight

    def in_flight_keys(self) -> Set[ChunkKey]:
        return set(self._inflight)

    def clear_all_in_flight(self) -> None:
        self._inflight.clear()

    def publish(self, key: ChunkKey, record: ChunkRecord) -> None:
        if key in self._live:
            raise DuplicatePublish(key)
        self.parent.add(record.node)
        self._live[key] = record

    def remove(self, key: ChunkKey) -> bool:
        record = self._live.pop(key, None)
        if record is None:
            return False
        self.parent.remove(record.node)
        record.release()
        log.debug("released chunk %s", key)
        return True

    def remove_all(self) -> None:
        for key in list(self._live.keys()):
            self.remove(key)

    def snapshot(self) -> list[tuple[ChunkKey, ChunkRecord]]:
        return list(self._live.items())
