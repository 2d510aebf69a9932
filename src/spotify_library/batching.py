"""
Batch helpers for endpoints that accept a bounded number of ids per call.
"""

from dataclasses import dataclass
from typing import Iterator, List, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class BatchProgress:
    completed: int
    total: int
    current_batch_size: int

    @property
    def fraction_completed(self) -> float:
        if self.total == 0:
            return 1.0
        return self.completed / self.total

    @property
    def is_finished(self) -> bool:
        return self.completed >= self.total


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])
