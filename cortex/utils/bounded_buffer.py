"""Append-only buffer with batch truncation."""

from __future__ import annotations

from typing import Generic, Iterable, Iterator, List, TypeVar

T = TypeVar("T")


class BoundedBuffer(Generic[T]):
    """
    List-backed history buffer.

    Once the buffer grows past ``max_size`` it is cut back to the newest
    ``retain`` items in one step instead of evicting one item per append.
    """

    def __init__(self, max_size: int, retain: int):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        if not 0 <= retain < max_size:
            raise ValueError("retain must be smaller than max_size")
        self.max_size = max_size
        self.retain = retain
        self._items: List[T] = []

    def append(self, item: T) -> None:
        self._items.append(item)
        self._enforce_limit()

    def extend(self, items: Iterable[T]) -> None:
        self._items.extend(items)
        self._enforce_limit()

    def _enforce_limit(self) -> None:
        if len(self._items) > self.max_size:
            self._items = self._items[-self.retain:] if self.retain else []

    def recent(self, count: int) -> List[T]:
        if count <= 0:
            return []
        return self._items[-count:]

    def last(self) -> T | None:
        return self._items[-1] if self._items else None

    def to_list(self) -> List[T]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))
