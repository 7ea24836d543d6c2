"""Bounded beam of parser configurations.

The beam-search training methods keep a small agenda of the best partial
parses. :class:`Beam` is that agenda: a fixed-capacity min-heap keyed by the
configuration's accumulated score, so that adding an entry beyond capacity
evicts the worst one. Among equal scores the entry added first survives, which
keeps training reproducible regardless of how the heap happens to be laid out.
"""
from __future__ import annotations
import heapq
import itertools
from typing import Iterator, List, Tuple

from .types import State


class Beam:
    """A bounded priority collection of :class:`~shiftreduce.types.State`.

    Attributes:
        capacity: The maximum number of configurations kept.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"Illegal beam size {capacity}")
        self.capacity = capacity
        self._heap: List[Tuple[float, int, State]] = []
        self._counter = itertools.count()

    def add(self, state: State) -> None:
        """Adds ``state``, evicting the lowest scoring entry on overflow."""
        # (score, -order): among ties the most recently added entry is the
        # heap minimum and is evicted first.
        heapq.heappush(self._heap, (state.score, -next(self._counter), state))
        if len(self._heap) > self.capacity:
            heapq.heappop(self._heap)

    def contains(self, state: State) -> bool:
        """True if a configuration with the same transition history is on the beam."""
        return any(entry.are_transitions_equal(state) for _, _, entry in self._heap)

    def best(self) -> State:
        if not self._heap:
            raise IndexError("best() on an empty beam")
        return next(iter(self))

    def __iter__(self) -> Iterator[State]:
        """Yields configurations best first; ties in insertion order."""
        for _, _, state in sorted(self._heap, key=lambda entry: (-entry[0], -entry[1])):
            yield state

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)
