"""Shared data types and collaborator interfaces for perceptron training.

The trainer never looks inside a parser configuration or a transition. It only
talks to the small protocols declared here, so any transition system that
implements them can be trained, from a constituency parser to the toy tagger
in :mod:`shiftreduce.tagging`.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, List, Optional, Protocol, Sequence, Tuple

__all__ = [
    "State",
    "Transition",
    "FeatureFactory",
    "Oracle",
    "OracleTransition",
    "ReorderingOracle",
    "StateFactory",
    "Evaluator",
    "CheckpointSink",
    "TrainingExample",
    "TrainingUpdate",
    "ScoredTransition",
    "ExampleResult",
    "BatchResult",
]


class State(Protocol):
    """A parser configuration.

    States are immutable: applying a transition always yields a new state.
    ``score`` is the accumulated model score of the transitions that produced
    the state and ``transitions`` is that transition history, oldest first.
    """

    score: float
    transitions: Tuple[Any, ...]

    def is_finished(self) -> bool: ...

    def are_transitions_equal(self, other: "State") -> bool: ...


class Transition(Protocol):
    """An atomic parser action. Must be hashable so it can be indexed."""

    def __hash__(self) -> int: ...

    def is_legal(self, state: State, constraints: Optional[Sequence[Any]] = None) -> bool: ...

    def apply(self, state: State, score: float = 0.0) -> State: ...


class FeatureFactory(Protocol):
    def featurize(self, state: State) -> List[str]: ...


@dataclass(frozen=True)
class OracleTransition:
    """The oracle's answer for one configuration.

    Attributes:
        transition: The transition the oracle would prefer, or ``None`` when it
            has no single preference.
        acceptable: Extra transitions that are also considered correct. An
            empty tuple means only ``transition`` is acceptable.
    """

    transition: Optional[Hashable]
    acceptable: Tuple[Hashable, ...] = ()

    def is_correct(self, predicted: Hashable) -> bool:
        if predicted in self.acceptable:
            return True
        return self.transition is not None and predicted == self.transition


class Oracle(Protocol):
    def gold_transition(self, example: "TrainingExample", state: State) -> OracleTransition: ...


class ReorderingOracle(Protocol):
    """Rewrites the remaining gold transitions after a parser mistake.

    On success ``transitions`` is mutated in place so that it holds the gold
    continuation *after* ``chosen`` has been applied to ``state``. On failure
    the method returns ``False`` and the contents of ``transitions`` are
    unspecified. Implementations must be safe to call from several worker
    threads at once.
    """

    def reorder(self, state: State, chosen: Any, transitions: List[Any]) -> bool: ...


StateFactory = Callable[[Any], State]
Evaluator = Callable[[Any, Any], float]
CheckpointSink = Callable[[Any, str], None]


@dataclass(frozen=True)
class TrainingExample:
    """A gold tree and its transition sequence, optionally cut at ``pivot``.

    A non-zero pivot makes training start from the configuration reached after
    the first ``pivot`` gold transitions. This is how data augmentation exposes
    the parser to mid-sentence contexts.
    """

    tree: Any
    transitions: Tuple[Any, ...]
    pivot: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "transitions", tuple(self.transitions))
        if not 0 <= self.pivot <= len(self.transitions):
            raise ValueError(
                f"pivot {self.pivot} out of range for {len(self.transitions)} transitions"
            )

    def with_pivot(self, pivot: int) -> "TrainingExample":
        return TrainingExample(self.tree, self.transitions, pivot)

    def initial_state(self, state_factory: StateFactory) -> State:
        state = state_factory(self.tree)
        for transition in self.transitions[: self.pivot]:
            state = transition.apply(state)
        return state

    def train_transitions(self) -> List[Any]:
        """Returns a fresh list of the transitions left to train on."""
        return list(self.transitions[self.pivot :])


@dataclass(frozen=True)
class TrainingUpdate:
    """A deferred perceptron update.

    Applying it adds ``delta`` to ``gold_transition`` and subtracts ``delta``
    from ``predicted_transition`` for every feature. Either id may be ``-1``,
    in which case that half of the update is skipped.
    """

    features: Tuple[str, ...]
    gold_transition: int
    predicted_transition: int
    delta: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "features", tuple(self.features))


@dataclass(frozen=True)
class ScoredTransition:
    index: int
    score: float


@dataclass
class ExampleResult:
    """What one training example produced."""

    updates: List[TrainingUpdate] = field(default_factory=list)
    num_correct: int = 0
    num_wrong: int = 0
    first_error: Optional[Tuple[int, int]] = None


@dataclass
class BatchResult:
    """Results of a batch, concatenated in dispatch order."""

    updates: List[TrainingUpdate] = field(default_factory=list)
    num_correct: int = 0
    num_wrong: int = 0
    first_errors: List[Tuple[int, int]] = field(default_factory=list)

    def add(self, result: ExampleResult) -> None:
        self.updates.extend(result.updates)
        self.num_correct += result.num_correct
        self.num_wrong += result.num_wrong
        if result.first_error is not None:
            self.first_errors.append(result.first_error)
