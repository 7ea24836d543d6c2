"""Sparse perceptron weights.

Each feature string owns a :class:`Weight`, a sparse map from transition id to
score. The :class:`WeightStore` holds every Weight of a model and provides the
handful of whole-model operations the trainer needs:

1.  **Scoring**: summing the Weights of a configuration's active features into
    a dense numpy vector over the transition vocabulary.
2.  **Updating**: applying perceptron promote/demote deltas.
3.  **Regularization**: L1 shrinkage and L2 decay, applied once per epoch.
4.  **Housekeeping**: condensing away zero entries and filtering features
    after a frequency cutoff. Both build a new dict and swap it in rather
    than deleting while iterating.
5.  **Averaging**: merging several stores into one, used for ensembles and
    retrained shards.
"""
from __future__ import annotations
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np


class Weight:
    """The per-transition scores of a single feature."""

    __slots__ = ("_scores",)

    def __init__(self, scores: Optional[Dict[int, float]] = None):
        self._scores: Dict[int, float] = dict(scores) if scores else {}

    def update(self, index: int, delta: float) -> None:
        """Adds ``delta`` at ``index``. Negative indices are ignored."""
        if index < 0:
            return
        self._scores[index] = self._scores.get(index, 0.0) + delta

    def score(self, scores: np.ndarray) -> None:
        """Adds this feature's contribution into ``scores`` in place."""
        if not self._scores:
            return
        indices = np.fromiter(self._scores.keys(), dtype=np.intp, count=len(self._scores))
        values = np.fromiter(self._scores.values(), dtype=np.float64, count=len(self._scores))
        scores[indices] += values

    def add_scaled(self, other: "Weight", scale: float) -> None:
        for index, value in other._scores.items():
            self._scores[index] = self._scores.get(index, 0.0) + value * scale

    def l1_reg(self, rate: float) -> None:
        shrunk = {}
        for index, value in self._scores.items():
            if value > 0.0:
                shrunk[index] = max(0.0, value - rate)
            elif value < 0.0:
                shrunk[index] = min(0.0, value + rate)
            else:
                shrunk[index] = 0.0
        self._scores = shrunk

    def l2_reg(self, rate: float) -> None:
        factor = 1.0 - rate
        self._scores = {index: value * factor for index, value in self._scores.items()}

    def condense(self) -> None:
        self._scores = {index: value for index, value in self._scores.items() if value != 0.0}

    def get(self, index: int) -> float:
        return self._scores.get(index, 0.0)

    def items(self) -> Iterable[Tuple[int, float]]:
        return self._scores.items()

    def copy(self) -> "Weight":
        return Weight(self._scores)

    def __len__(self) -> int:
        return len(self._scores)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Weight):
            return NotImplemented
        return self._scores == other._scores

    def __repr__(self) -> str:
        return f"Weight({self._scores!r})"


class WeightStore:
    """Maps feature strings to their :class:`Weight`.

    Attributes:
        num_transitions: Size of the transition vocabulary, i.e. the length of
            the dense vectors produced by :meth:`score`.
    """

    def __init__(self, num_transitions: int, weights: Optional[Dict[str, Weight]] = None):
        if num_transitions < 0:
            raise ValueError(f"num_transitions must be non-negative, got {num_transitions}")
        self.num_transitions = num_transitions
        self._weights: Dict[str, Weight] = weights if weights is not None else {}

    # ------------------------------------------------------------------
    # Scoring and updates
    # ------------------------------------------------------------------
    def score(self, features: Iterable[str]) -> np.ndarray:
        """
        Sums the weights of ``features`` into a dense score vector.

        Features that have never been updated contribute nothing; an unknown
        feature is a normal occurrence at test time, not an error.

        Args:
            features: The active features of a configuration.

        Returns:
            A float64 array of length ``num_transitions``.
        """
        scores = np.zeros(self.num_transitions, dtype=np.float64)
        for feature in features:
            weight = self._weights.get(feature)
            if weight is None:
                continue
            weight.score(scores)
        return scores

    def update_weight(self, features: Iterable[str], gold: int, predicted: int, delta: float) -> None:
        """Promotes ``gold`` and demotes ``predicted`` by ``delta`` for each feature."""
        for feature in features:
            weight = self._weights.get(feature)
            if weight is None:
                weight = Weight()
                self._weights[feature] = weight
            weight.update(gold, delta)
            weight.update(predicted, -delta)

    # ------------------------------------------------------------------
    # Regularization and housekeeping
    # ------------------------------------------------------------------
    def l1_reg(self, rate: float) -> None:
        for weight in self._weights.values():
            weight.l1_reg(rate)

    def l2_reg(self, rate: float) -> None:
        for weight in self._weights.values():
            weight.l2_reg(rate)

    def condense(self) -> None:
        """Drops zero entries, then every feature left without entries."""
        condensed: Dict[str, Weight] = {}
        for feature, weight in self._weights.items():
            weight.condense()
            if len(weight) > 0:
                condensed[feature] = weight
        self._weights = condensed

    def filter(self, keep: Iterable[str]) -> None:
        """Removes every feature not in ``keep``."""
        keep = keep if isinstance(keep, (set, frozenset)) else set(keep)
        self._weights = {f: w for f, w in self._weights.items() if f in keep}

    # ------------------------------------------------------------------
    # Averaging and copies
    # ------------------------------------------------------------------
    @classmethod
    def merge_average(
        cls, stores: Sequence["WeightStore"], scales: Optional[Sequence[float]] = None
    ) -> "WeightStore":
        """
        Averages several weight stores into a new one.

        The result contains the union of all features. Each cell is the sum of
        every input's value for that cell times the input's scale; a store that
        lacks a feature contributes zero for it.

        Args:
            stores: The stores to merge. Must not be empty.
            scales: Optional per-store multipliers. Defaults to ``1 / N`` each.

        Returns:
            A new :class:`WeightStore`; the inputs are left untouched.

        Raises:
            ValueError: If ``stores`` is empty, the stores disagree on the size
                of the transition vocabulary, or ``scales`` has the wrong length.
        """
        stores = list(stores)
        if not stores:
            raise ValueError("Cannot average an empty collection of models")
        if scales is None:
            scales = [1.0 / len(stores)] * len(stores)
        elif len(scales) != len(stores):
            raise ValueError(f"Expected {len(stores)} scales, got {len(scales)}")
        sizes = {store.num_transitions for store in stores}
        if len(sizes) != 1:
            raise ValueError(f"Cannot average models with different transition counts: {sorted(sizes)}")

        merged: Dict[str, Weight] = {}
        for store in stores:
            for feature in store._weights:
                merged.setdefault(feature, Weight())
        for store, scale in zip(stores, scales):
            for feature, weight in store._weights.items():
                merged[feature].add_scaled(weight, scale)
        return cls(stores[0].num_transitions, merged)

    def copy(self) -> "WeightStore":
        return WeightStore(
            self.num_transitions, {f: w.copy() for f, w in self._weights.items()}
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def stats(self) -> Dict[str, int]:
        """Returns counts describing the size of the model."""
        return {
            "num_features": len(self._weights),
            "num_weights": sum(len(w) for w in self._weights.values()),
            "total_feature_length": sum(len(f) for f in self._weights),
        }

    def features(self) -> set:
        return set(self._weights)

    def get(self, feature: str) -> Optional[Weight]:
        return self._weights.get(feature)

    def items(self) -> Iterable[Tuple[str, Weight]]:
        return self._weights.items()

    def __contains__(self, feature: object) -> bool:
        return feature in self._weights

    def __iter__(self) -> Iterator[str]:
        return iter(self._weights)

    def __len__(self) -> int:
        return len(self._weights)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeightStore):
            return NotImplemented
        return self.num_transitions == other.num_transitions and self._weights == other._weights
