"""Cursor implementations shared by the object stores."""

from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")

PageFetcher = Callable[[int, int], list[T]]


class PagedCursor(Generic[T]):
    """Lazy LIMIT/OFFSET enumeration.

    The fetcher must order results by key so consecutive pages do not
    overlap. Rows inserted or removed during enumeration shift the offsets,
    so callers that mutate the scanned set should use MaterializedCursor.
    """

    def __init__(self, fetch_page: PageFetcher, batch_size: int = 1000):
        self._fetch_page = fetch_page
        self._batch_size = batch_size
        self._offset = 0
        self._exhausted = False

    def next_batch(self) -> list[T] | None:
        if self._exhausted:
            return None

        batch = self._fetch_page(self._offset, self._batch_size)
        self._offset += len(batch)
        if len(batch) < self._batch_size:
            self._exhausted = True
        return batch or None

    def all(self) -> list[T]:
        return list(self)

    def batches(self) -> Iterator[list[T]]:
        while (batch := self.next_batch()) is not None:
            yield batch

    def __iter__(self) -> Iterator[T]:
        for batch in self.batches():
            yield from batch


class MaterializedCursor(Generic[T]):
    """Cursor over a result set that was read in full up front."""

    def __init__(self, items: list[T], batch_size: int = 1000):
        self._items = items
        self._batch_size = batch_size
        self._offset = 0

    def __len__(self) -> int:
        return len(self._items)

    def next_batch(self) -> list[T] | None:
        if self._offset >= len(self._items):
            return None
        batch = self._items[self._offset : self._offset + self._batch_size]
        self._offset += len(batch)
        return batch

    def all(self) -> list[T]:
        remaining = self._items[self._offset :]
        self._offset = len(self._items)
        return remaining

    def batches(self) -> Iterator[list[T]]:
        while (batch := self.next_batch()) is not None:
            yield batch

    def __iter__(self) -> Iterator[T]:
        for batch in self.batches():
            yield from batch
