"""Recent-query buffer used to suppress repeated search events."""

from __future__ import annotations

from collections import deque
from typing import Iterator


class RecentQueryBuffer:
    """Bounded FIFO of recently logged queries.

    Browser search pages tend to fire the same query several times in a row
    (debounce, retries, back/forward). Remembering the last few queries is
    enough to absorb those repeats without any persistent state.

    Membership is exact, case-sensitive string equality.
    """

    def __init__(self, capacity: int = 3):
        """Initialize the buffer.

        Args:
            capacity: Maximum number of queries remembered (must be >= 1)
        """
        if capacity < 1:
            raise ValueError(f"Buffer capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._queries: deque[str] = deque(maxlen=capacity)

    def is_duplicate(self, query: str) -> bool:
        """Return True if the query is currently remembered."""
        return query in self._queries

    def record(self, query: str) -> None:
        """Remember a query, evicting the oldest one when full."""
        self._queries.append(query)

    def snapshot(self) -> tuple[str, ...]:
        """Return the remembered queries, oldest first."""
        return tuple(self._queries)

    def __len__(self) -> int:
        return len(self._queries)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._queries))
