"""Small chunk-result cache, independent of the main item store."""

import time
from collections.abc import Callable

from treepager.models.node import Record

ChunkKey = tuple[int, int]


class ChunkCache:
    """Maps a chunk range to its fetched records, evicting least recently accessed."""

    def __init__(self, capacity: int, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.capacity = max(0, capacity)
        self._clock = clock
        self._entries: dict[ChunkKey, tuple[Record, ...]] = {}
        self._accessed: dict[ChunkKey, float] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, start: int, end: int) -> tuple[Record, ...] | None:
        key = (start, end)
        records = self._entries.get(key)
        if records is not None:
            self._accessed[key] = self._clock()
        return records

    def touch(self, start: int, end: int) -> None:
        key = (start, end)
        if key in self._entries:
            self._accessed[key] = self._clock()

    def put(self, start: int, end: int, records: tuple[Record, ...]) -> list[ChunkKey]:
        """Insert a chunk and return the keys evicted to stay within capacity."""
        if self.capacity == 0:
            return []
        key = (start, end)
        self._entries[key] = records
        self._accessed[key] = self._clock()
        evicted: list[ChunkKey] = []
        while len(self._entries) > self.capacity:
            # min() keeps insertion order on ties
            oldest = min(self._accessed, key=self._accessed.__getitem__)
            del self._entries[oldest]
            del self._accessed[oldest]
            evicted.append(oldest)
        return evicted

    def clear(self) -> None:
        self._entries.clear()
        self._accessed.clear()
