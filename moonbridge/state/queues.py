"""Bounded buffers for Moonbridge session state."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from typing import Annotated, Any

import msgspec

from ..protocol.structures import ChartPoint, ConsoleEntry


def _make_deque() -> deque[Any]:
    """Factory for msgspec default_factory to avoid lambdas."""
    return deque()


class BoundedDeque(msgspec.Struct):
    """Append-only deque that evicts its oldest items past ``max_items``."""

    max_items: Annotated[int | None, msgspec.Meta(ge=1)] = None
    dropped: int = 0
    _queue: deque[Any] = msgspec.field(default_factory=_make_deque)

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._queue)

    def __getitem__(self, index: int) -> Any:
        return self._queue[index]

    def clear(self) -> None:
        self._queue.clear()

    def update_limit(self, max_items: int | None) -> None:
        """Update the bound using strict declarative validation."""
        if max_items is not None:
            max_items = msgspec.convert(max_items, Annotated[int, msgspec.Meta(ge=1)])
        self.max_items = max_items
        self._make_room_for(0)

    def append(self, item: Any) -> int:
        """Append *item*; return how many old items were evicted."""
        evicted = self._make_room_for(1)
        self._queue.append(item)
        return evicted

    def extend(self, items: Iterable[Any]) -> int:
        return sum(self.append(item) for item in items)

    def snapshot(self) -> list[Any]:
        return list(self._queue)

    def _make_room_for(self, incoming_count: int) -> int:
        evicted = 0
        if self.max_items is None:
            return evicted
        while self._queue and len(self._queue) + incoming_count > self.max_items:
            self._queue.popleft()
            evicted += 1
        self.dropped += evicted
        return evicted


class ChartBuffer(BoundedDeque):
    """Rolling window of chart points."""

    @property
    def last(self) -> ChartPoint | None:
        return self._queue[-1] if self._queue else None


class ConsoleBuffer(BoundedDeque):
    """Rolling console history."""

    @property
    def last(self) -> ConsoleEntry | None:
        return self._queue[-1] if self._queue else None


__all__ = ["BoundedDeque", "ChartBuffer", "ConsoleBuffer"]
