"""
Recency tracking with an intrusive doubly linked list and a dict index.

Touch, remove and evict are all O(1) and do not depend on dict ordering.
"""
from typing import Iterator, Optional


class _Node:
    __slots__ = ("key", "prev", "next")

    def __init__(self, key: Optional[str]) -> None:
        self.key = key
        self.prev: "_Node" = self
        self.next: "_Node" = self


class RecencyList:
    """
    Keys ordered from least to most recently touched.

    Example:
        recency = RecencyList()
        for key in ("k1", "k2", "k3"):
            recency.touch(key)
        recency.touch("k1")
        recency.pop_oldest()  # "k2"
    """

    def __init__(self) -> None:
        self._head = _Node(None)  # sentinel; head.next is the oldest
        self._index: dict[str, _Node] = {}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[str]:
        """Iterate from least to most recently touched."""
        node = self._head.next
        while node is not self._head:
            yield node.key  # type: ignore[misc]
            node = node.next

    def touch(self, key: str) -> None:
        """Insert ``key`` or move it to the most recent position."""
        node = self._index.get(key)
        if node is None:
            node = _Node(key)
            self._index[key] = node
        else:
            self._unlink(node)
        self._link_last(node)

    def remove(self, key: str) -> bool:
        node = self._index.pop(key, None)
        if node is None:
            return False
        self._unlink(node)
        return True

    def oldest(self) -> Optional[str]:
        if not self._index:
            return None
        return self._head.next.key

    def pop_oldest(self) -> Optional[str]:
        """Remove and return the least recently touched key."""
        key = self.oldest()
        if key is not None:
            self.remove(key)
        return key

    def clear(self) -> None:
        self._head.prev = self._head.next = self._head
        self._index.clear()

    def _link_last(self, node: _Node) -> None:
        tail = self._head.prev
        node.prev = tail
        node.next = self._head
        tail.next = node
        self._head.prev = node

    @staticmethod
    def _unlink(node: _Node) -> None:
        node.prev.next = node.next
        node.next.prev = node.prev
        node.prev = node.next = node
