"""Stable enumeration of the transitions a model can score."""
from __future__ import annotations
from typing import Any, Dict, Hashable, Iterable, Iterator, List


class TransitionIndex:
    """An immutable bijection between transitions and column ids.

    Every weight vector in the model is indexed by these ids, so the order in
    which transitions are first seen must never change once the index is built.
    Duplicate transitions in the input keep their first position.
    """

    def __init__(self, transitions: Iterable[Hashable]):
        self._objects: List[Any] = []
        self._ids: Dict[Hashable, int] = {}
        for transition in transitions:
            if transition not in self._ids:
                self._ids[transition] = len(self._objects)
                self._objects.append(transition)

    @classmethod
    def from_examples(cls, examples: Iterable[Any]) -> "TransitionIndex":
        """Builds an index from every transition used by the training examples."""
        return cls(t for example in examples for t in example.transitions)

    def index_of(self, transition: Hashable) -> int:
        """Returns the id of ``transition`` or ``-1`` if it is not indexed."""
        return self._ids.get(transition, -1)

    def get(self, index: int) -> Any:
        return self._objects[index]

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._objects)

    def __contains__(self, transition: object) -> bool:
        return transition in self._ids

    def __repr__(self) -> str:
        return f"TransitionIndex({self._objects!r})"
