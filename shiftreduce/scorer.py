from __future__ import annotations
import heapq
from typing import Any, List, Optional, Sequence, Tuple

from .transition_index import TransitionIndex
from .types import ScoredTransition, State
from .weights import WeightStore


class NoLegalTransitionError(RuntimeError):
    """Raised when a configuration that must advance has no legal transition."""


class TransitionScorer:
    """
    Ranks the transitions available from a configuration.

    The scorer turns a configuration's active features into a dense score
    vector via the :class:`~shiftreduce.weights.WeightStore`, discards illegal
    transitions on request, and keeps the ``k`` best with a fixed-capacity
    min-heap.

    Ties are resolved in favour of the transition seen first, i.e. the one
    with the lower id. The heap orders entries by ``(score, -id)`` so that when
    it overflows, the evicted entry among equal scores is always the one with
    the highest id. Results come back sorted by score descending, then id
    ascending.

    Attributes:
        weights: The weight store that is read (never written) while scoring.
        transition_index: The vocabulary whose ids index the score vector.
    """

    def __init__(self, weights: WeightStore, transition_index: TransitionIndex):
        self.weights = weights
        self.transition_index = transition_index

    def top_k(
        self,
        state: State,
        features: Sequence[str],
        require_legal: bool = True,
        k: int = 1,
        constraints: Optional[Sequence[Any]] = None,
    ) -> List[ScoredTransition]:
        """
        Returns up to ``k`` of the highest scoring transitions.

        Args:
            state: The configuration being extended. Only consulted for
                legality checks.
            features: The configuration's active features.
            require_legal: When true, transitions whose ``is_legal`` returns
                false are never returned.
            k: The maximum number of transitions to return.
            constraints: Passed through to ``Transition.is_legal``.

        Returns:
            A list of :class:`ScoredTransition`, best first. It is empty when no
            transition qualifies.
        """
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")
        scores = self.weights.score(features)
        heap: List[Tuple[float, int]] = []
        for index in range(len(self.transition_index)):
            if require_legal and not self.transition_index.get(index).is_legal(state, constraints):
                continue
            heapq.heappush(heap, (float(scores[index]), -index))
            if len(heap) > k:
                heapq.heappop(heap)
        ranked = sorted(heap, key=lambda item: (-item[0], -item[1]))
        return [ScoredTransition(-neg_index, score) for score, neg_index in ranked]

    def best(
        self,
        state: State,
        features: Sequence[str],
        require_legal: bool = True,
        constraints: Optional[Sequence[Any]] = None,
    ) -> Optional[ScoredTransition]:
        """Returns the single highest scoring transition, or ``None``."""
        transitions = self.top_k(state, features, require_legal, 1, constraints)
        if not transitions:
            return None
        return transitions[0]
