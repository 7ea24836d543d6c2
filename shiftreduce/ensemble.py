"""Averaging of the best checkpoints seen during training."""
from __future__ import annotations
import heapq
import itertools
from typing import Callable, List, Tuple

from .model import PerceptronModel
from .weights import WeightStore


class Ensembler:
    """
    Keeps the top-N dev-scored model snapshots and averages them.

    Snapshots are held in a min-heap keyed by dev score. When a new snapshot
    pushes the heap past ``max_models`` the lowest-scoring one is evicted;
    among equal scores the older snapshot goes first.

    Attributes:
        max_models: How many snapshots to retain.
    """

    def __init__(self, max_models: int):
        if max_models <= 0:
            raise ValueError(f"max_models must be positive, got {max_models}")
        self.max_models = max_models
        self._heap: List[Tuple[float, int, PerceptronModel]] = []
        self._counter = itertools.count()

    def add(self, model: PerceptronModel, score: float) -> None:
        """Retains a snapshot of ``model``; the caller may keep mutating it."""
        heapq.heappush(self._heap, (score, next(self._counter), model.copy()))
        if len(self._heap) > self.max_models:
            heapq.heappop(self._heap)

    def ranked(self) -> List[Tuple[float, PerceptronModel]]:
        """Returns the retained ``(score, model)`` pairs, best first."""
        ordered = sorted(self._heap, key=lambda entry: (-entry[0], -entry[1]))
        return [(score, model) for score, _, model in ordered]

    def average(self) -> WeightStore:
        """Averages every retained snapshot with equal weight."""
        ranked = self.ranked()
        if not ranked:
            raise ValueError("Cannot average empty models")
        _print_scores(ranked)
        return WeightStore.merge_average([model.weights for _, model in ranked])

    def cross_validate(self, evaluate: Callable[[WeightStore], float]) -> Tuple[WeightStore, int, float]:
        """
        Picks how many of the best snapshots to average by dev score.

        Averages the best 1, 2, ... N snapshots in turn and evaluates each
        average. A later prefix only wins with a strictly higher score.

        Args:
            evaluate: Scores a candidate averaged weight store on held-out data.

        Returns:
            A ``(weights, size, score)`` tuple for the winning prefix.
        """
        ranked = self.ranked()
        if not ranked:
            raise ValueError("Cannot average empty models")
        best_weights = None
        best_size = 0
        best_score = float("-inf")
        for size in range(1, len(ranked) + 1):
            print(f"Testing with {size} models averaged together")
            candidate = WeightStore.merge_average([model.weights for _, model in ranked[:size]])
            score = evaluate(candidate)
            if score > best_score:
                best_weights, best_size, best_score = candidate, size, score
        _print_scores(ranked[:best_size])
        print(f"Dev score for {best_size} models: {best_score}")
        return best_weights, best_size, best_score

    def __len__(self) -> int:
        return len(self._heap)


def _print_scores(ranked: List[Tuple[float, PerceptronModel]]) -> None:
    print(f"Averaging {len(ranked)} models with scores")
    for score, _ in ranked:
        print(f" {score:.2f}")
