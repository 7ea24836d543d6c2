from __future__ import annotations
from typing import Any, List, Optional, Sequence

from .scorer import NoLegalTransitionError, TransitionScorer
from .transition_index import TransitionIndex
from .types import FeatureFactory, ScoredTransition, State
from .weights import WeightStore


class PerceptronModel:
    """
    A trained (or training) shift-reduce perceptron.

    The model ties together the three things needed to score a configuration:
    the transition vocabulary, the feature factory that describes
    configurations, and the learned weights.

    Attributes:
        transition_index: The transition vocabulary.
        feature_factory: Turns a configuration into feature strings.
        weights: The learned :class:`~shiftreduce.weights.WeightStore`.
    """

    def __init__(
        self,
        transition_index: TransitionIndex,
        feature_factory: FeatureFactory,
        weights: Optional[WeightStore] = None,
    ):
        self.transition_index = transition_index
        self.feature_factory = feature_factory
        self.weights = weights if weights is not None else WeightStore(len(transition_index))
        if self.weights.num_transitions != len(transition_index):
            raise ValueError(
                f"Weight store covers {self.weights.num_transitions} transitions, "
                f"index has {len(transition_index)}"
            )

    @property
    def scorer(self) -> TransitionScorer:
        return TransitionScorer(self.weights, self.transition_index)

    def copy(self) -> "PerceptronModel":
        """Returns a snapshot whose weights are independent of this model's."""
        return PerceptronModel(self.transition_index, self.feature_factory, self.weights.copy())

    def reset_weights(self) -> None:
        self.weights = WeightStore(len(self.transition_index))

    def featurize(self, state: State) -> List[str]:
        return self.feature_factory.featurize(state)

    def find_highest_scoring_transitions(
        self,
        state: State,
        require_legal: bool = True,
        k: int = 1,
        constraints: Optional[Sequence[Any]] = None,
    ) -> List[ScoredTransition]:
        return self.scorer.top_k(state, self.featurize(state), require_legal, k, constraints)

    def parse(self, state: State, constraints: Optional[Sequence[Any]] = None) -> State:
        """Greedily applies the best legal transition until ``state`` is finished."""
        while not state.is_finished():
            best = self.find_highest_scoring_transitions(state, True, 1, constraints)
            if not best:
                raise NoLegalTransitionError(f"No legal transition from {state!r}")
            state = self.transition_index.get(best[0].index).apply(state, best[0].score)
        return state

    def stats(self) -> dict:
        stats = self.weights.stats()
        stats["num_transitions"] = len(self.transition_index)
        return stats

    def output_stats(self) -> None:
        stats = self.stats()
        print(f"Number of known features: {stats['num_features']}")
        print(f"Number of non-zero weights: {stats['num_weights']}")
        print(f"Total word length: {stats['total_feature_length']}")
        print(f"Number of transitions: {stats['num_transitions']}")
