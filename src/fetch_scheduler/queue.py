"""
Priority queue for the concurrency scheduler
"""
import heapq
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from .types import QueueEntry

T = TypeVar("T")


@dataclass(order=True)
class PriorityItem(Generic[T]):
    """Heap wrapper ordering entries by priority, then arrival"""

    priority: int = field(compare=True)
    """Negated priority (heapq is a min-heap)"""

    sequence: int = field(compare=True)
    """Arrival order for equal priorities"""

    entry: QueueEntry[T] = field(compare=False)


class PriorityQueue(Generic[T]):
    """
    Orders entries by priority (higher first), then strictly by arrival.

    Removal is lazy: removed ids are skipped when they reach the head.
    """

    def __init__(self) -> None:
        self._items: list[PriorityItem[T]] = []
        self._removed: set[str] = set()

    def enqueue(self, entry: QueueEntry[T]) -> None:
        heapq.heappush(
            self._items,
            PriorityItem(priority=-entry.priority, sequence=entry.sequence, entry=entry),
        )

    def dequeue(self) -> Optional[QueueEntry[T]]:
        """Remove and return the head entry, or None if empty."""
        while self._items:
            item = heapq.heappop(self._items)
            if item.entry.task_id in self._removed:
                self._removed.discard(item.entry.task_id)
                continue
            return item.entry
        return None

    def peek(self) -> Optional[QueueEntry[T]]:
        self._drop_removed_head()
        return self._items[0].entry if self._items else None

    def is_empty(self) -> bool:
        self._drop_removed_head()
        return not self._items

    def _drop_removed_head(self) -> None:
        while self._items and self._items[0].entry.task_id in self._removed:
            item = heapq.heappop(self._items)
            self._removed.discard(item.entry.task_id)

    @property
    def size(self) -> int:
        """Number of live entries"""
        return len(self._items) - len(self._removed)

    def remove_by_id(self, task_id: str) -> Optional[QueueEntry[T]]:
        """Remove a specific entry; returns it, or None if not queued."""
        if task_id in self._removed:
            return None
        for item in self._items:
            if item.entry.task_id == task_id:
                self._removed.add(task_id)
                return item.entry
        return None

    def clear(self) -> list[QueueEntry[Any]]:
        """Empty the queue and return the live entries in promotion order."""
        entries = self.get_all()
        self._items.clear()
        self._removed.clear()
        return entries

    def get_all(self) -> list[QueueEntry[Any]]:
        """Live entries in promotion order."""
        return [
            item.entry
            for item in sorted(self._items)
            if item.entry.task_id not in self._removed
        ]
