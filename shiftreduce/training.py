"""Per-example perceptron update policies.

Every training method walks one :class:`~shiftreduce.types.TrainingExample`
and records the perceptron updates its mistakes call for. Nothing here writes
to the model: the updates are returned as
:class:`~shiftreduce.types.TrainingUpdate` objects and applied later, once a
whole batch has been scored. That separation is what lets several worker
threads share one :class:`ExampleTrainer` safely.

The methods fall into three families:

-   **GOLD, EARLY_TERMINATION, REORDER_ORACLE** follow the gold transition
    sequence and compare each gold transition with the model's unrestricted
    best guess. They differ only in what happens after a mistake: keep
    following gold, stop, or ask a reordering oracle for a new gold
    continuation consistent with the mistake.
-   **ORACLE** follows the model's own best legal transition and asks a
    dynamic oracle whether each choice is acceptable.
-   **BEAM, REORDER_BEAM** run a beam search alongside the gold configuration
    and update whenever the best beam entry diverges from gold.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional

from .beam_search import Beam
from .config import TrainingMethod
from .model import PerceptronModel
from .scorer import NoLegalTransitionError
from .types import (
    ExampleResult,
    Oracle,
    ReorderingOracle,
    State,
    StateFactory,
    TrainingExample,
    TrainingUpdate,
)


class TrainingInvariantError(RuntimeError):
    """Raised when training reaches a state that would corrupt the weights."""


class ExampleTrainer:
    """
    Computes the perceptron updates for single training examples.

    Instances are read-only with respect to the model and hold no per-example
    state, so one trainer can be shared by every worker in a batch.

    Attributes:
        model: The model whose current weights are used for scoring.
        method: The update policy.
        state_factory: Builds the initial configuration of a gold tree.
        learning_rate: The delta attached to every update produced.
        beam_size: Agenda size for the beam methods.
        oracle: Dynamic oracle, required by ORACLE.
        reordering_oracle: Required by REORDER_ORACLE and REORDER_BEAM.
    """

    def __init__(
        self,
        model: PerceptronModel,
        method: TrainingMethod,
        state_factory: StateFactory,
        *,
        learning_rate: float = 1.0,
        beam_size: int = 1,
        oracle: Optional[Oracle] = None,
        reordering_oracle: Optional[ReorderingOracle] = None,
    ):
        method = TrainingMethod.parse(method)
        if method.is_beam and beam_size <= 0:
            raise ValueError(f"Illegal beam size {beam_size}")
        if method is TrainingMethod.ORACLE and oracle is None:
            raise ValueError("The ORACLE training method requires an oracle")
        if method.needs_reordering and reordering_oracle is None:
            raise ValueError(f"The {method.value} training method requires a reordering oracle")

        self.model = model
        self.method = method
        self.state_factory = state_factory
        self.learning_rate = learning_rate
        self.beam_size = beam_size
        self.oracle = oracle
        self.reordering_oracle = reordering_oracle

        self._dispatch: Dict[TrainingMethod, Callable[[TrainingExample], ExampleResult]] = {
            TrainingMethod.ORACLE: self._train_oracle,
            TrainingMethod.BEAM: self._train_beam,
            TrainingMethod.REORDER_BEAM: self._train_beam,
            TrainingMethod.GOLD: self._train_gold_sequence,
            TrainingMethod.EARLY_TERMINATION: self._train_gold_sequence,
            TrainingMethod.REORDER_ORACLE: self._train_gold_sequence,
        }

    def train_example(self, example: TrainingExample) -> ExampleResult:
        """
        Runs the configured update policy over one example.

        Args:
            example: The example to train on. It is never modified.

        Returns:
            An :class:`~shiftreduce.types.ExampleResult` holding the updates,
            the number of correct and wrong decisions, and for the
            gold-sequence methods the first ``(predicted, gold)`` mistake.

        Raises:
            NoLegalTransitionError: If a configuration that must advance has
                                    no legal transition.
        """
        return self._dispatch[self.method](example)

    __call__ = train_example

    # ------------------------------------------------------------------
    # ORACLE
    # ------------------------------------------------------------------
    def _train_oracle(self, example: TrainingExample) -> ExampleResult:
        result = ExampleResult()
        index = self.model.transition_index
        scorer = self.model.scorer
        state = example.initial_state(self.state_factory)
        while not state.is_finished():
            features = self.model.featurize(state)
            prediction = scorer.best(state, features, True)
            if prediction is None:
                raise NoLegalTransitionError(f"Did not find a legal transition from {state!r}")
            predicted = index.get(prediction.index)
            gold = self.oracle.gold_transition(example, state)
            if gold.is_correct(predicted):
                result.num_correct += 1
                # An acceptable prediction still promotes the oracle's
                # preferred transition, without demoting the prediction.
                if gold.transition is not None and gold.transition != predicted:
                    gold_num = index.index_of(gold.transition)
                    if gold_num >= 0:
                        result.updates.append(
                            TrainingUpdate(features, gold_num, -1, self.learning_rate)
                        )
            else:
                result.num_wrong += 1
                gold_num = index.index_of(gold.transition) if gold.transition is not None else -1
                result.updates.append(
                    TrainingUpdate(features, gold_num, prediction.index, self.learning_rate)
                )
            state = predicted.apply(state)
        return result

    # ------------------------------------------------------------------
    # BEAM / REORDER_BEAM
    # ------------------------------------------------------------------
    def _train_beam(self, example: TrainingExample) -> ExampleResult:
        result = ExampleResult()
        index = self.model.transition_index
        scorer = self.model.scorer
        reorder = self.method is TrainingMethod.REORDER_BEAM

        gold_state = example.initial_state(self.state_factory)
        transitions = example.train_transitions()
        agenda = Beam(self.beam_size)
        agenda.add(gold_state)

        while transitions:
            gold_transition = transitions[0]
            best_gold_transition: Any = None
            best_gold_score = 0.0
            new_agenda = Beam(self.beam_size)
            best_state: Optional[State] = None
            best_parent_features: List[str] = []

            for current in agenda:
                is_gold_state = reorder and gold_state.are_transitions_equal(current)
                features = self.model.featurize(current)
                for scored in scorer.top_k(current, features, True, self.beam_size):
                    transition = index.get(scored.index)
                    new_state = transition.apply(current, scored.score)
                    new_agenda.add(new_state)
                    if best_state is None or best_state.score < new_state.score:
                        best_state = new_state
                        best_parent_features = features
                    if is_gold_state and (best_gold_transition is None or scored.score > best_gold_score):
                        best_gold_transition = transition
                        best_gold_score = scored.score

            # REORDER_BEAM can back itself into a corner where the gold
            # configuration has no legal continuation at all.
            if reorder and best_gold_transition is None:
                break

            if best_state is None:
                print(f"Warning: unable to find a best transition for {example.tree!r}")
                print(f"  previous agenda: {list(agenda)!r}")
                print(f"  gold transitions: {list(example.transitions)!r}")
                break

            new_gold_state = gold_transition.apply(gold_state, 0.0)

            if new_gold_state.are_transitions_equal(best_state):
                result.num_correct += 1
                transitions.pop(0)
            else:
                result.num_wrong += 1
                last_transition = index.index_of(best_state.transitions[-1])
                result.updates.append(
                    TrainingUpdate(best_parent_features, -1, last_transition, self.learning_rate)
                )
                result.updates.append(
                    TrainingUpdate(
                        self.model.featurize(gold_state),
                        index.index_of(gold_transition),
                        -1,
                        self.learning_rate,
                    )
                )
                if new_agenda.contains(new_gold_state):
                    transitions.pop(0)
                elif not reorder:
                    break
                else:
                    if not self.reordering_oracle.reorder(gold_state, best_gold_transition, transitions):
                        break
                    new_gold_state = best_gold_transition.apply(gold_state)
                    if not new_agenda.contains(new_gold_state):
                        break

            gold_state = new_gold_state
            agenda = new_agenda

        return result

    # ------------------------------------------------------------------
    # GOLD / EARLY_TERMINATION / REORDER_ORACLE
    # ------------------------------------------------------------------
    def _train_gold_sequence(self, example: TrainingExample) -> ExampleResult:
        result = ExampleResult()
        index = self.model.transition_index
        scorer = self.model.scorer
        state = example.initial_state(self.state_factory)
        transitions = example.train_transitions()

        while transitions:
            transition = transitions[0]
            gold_num = index.index_of(transition)
            features = self.model.featurize(state)
            prediction = scorer.best(state, features, False)
            if prediction is None:
                raise NoLegalTransitionError("Cannot predict with an empty transition index")
            if gold_num == prediction.index:
                transitions.pop(0)
                state = transition.apply(state)
                result.num_correct += 1
                continue

            result.num_wrong += 1
            if result.first_error is None:
                result.first_error = (prediction.index, gold_num)
            result.updates.append(
                TrainingUpdate(features, gold_num, prediction.index, self.learning_rate)
            )
            if self.method is TrainingMethod.EARLY_TERMINATION:
                break
            if self.method is TrainingMethod.GOLD:
                transitions.pop(0)
                state = transition.apply(state)
            elif self.method is TrainingMethod.REORDER_ORACLE:
                predicted = index.get(prediction.index)
                if not self.reordering_oracle.reorder(state, predicted, transitions):
                    break
                state = predicted.apply(state)
            else:
                raise TrainingInvariantError(f"Unexpected method {self.method}")

        return result
