"""Bounded FIFO log of progress messages."""

from collections import deque
from typing import Deque, Iterator, Tuple

DEFAULT_PROGRESS_CAPACITY = 100


class ProgressBuffer:
    """
    Keeps the most recent progress lines in arrival order.

    Appending past capacity evicts from the head, so ``len(buffer)`` never
    exceeds ``capacity``.
    """

    def __init__(self, capacity: int = DEFAULT_PROGRESS_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Progress capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._lines: Deque[str] = deque(maxlen=capacity)
        self._appended = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def appended(self) -> int:
        """Lines appended since creation or the last clear(), evicted ones included."""
        return self._appended

    def append(self, line: str) -> None:
        self._lines.append(line)
        self._appended += 1

    def snapshot(self) -> Tuple[str, ...]:
        """Current lines, oldest first. Does not follow later appends."""
        return tuple(self._lines)

    def clear(self) -> None:
        self._lines.clear()
        self._appended = 0

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProgressBuffer):
            return NotImplemented
        return self._capacity == other._capacity and list(self._lines) == list(other._lines)

    def __repr__(self) -> str:
        return f"ProgressBuffer(capacity={self._capacity}, lines={len(self._lines)})"


__all__ = ["ProgressBuffer", "DEFAULT_PROGRESS_CAPACITY"]
