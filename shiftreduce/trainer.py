"""Core logic for training a shift-reduce perceptron model.

This module drives training from start to finish. One *pass* over the data
works as follows:

1.  **Epochs**: each iteration copies the training examples, optionally adds
    randomly truncated copies of long examples (data augmentation), shuffles,
    and feeds fixed-size batches through the
    :class:`~shiftreduce.batch.BatchCoordinator`.
2.  **Regularization and decay**: after the last batch of an iteration the
    weights are L2- then L1-regularized, and every few iterations the learning
    rate is decayed.
3.  **Model selection**: with a dev set, each iteration is evaluated; training
    stops after too many iterations without a new best score, and the best
    snapshots are handed to an :class:`~shiftreduce.ensemble.Ensembler` that
    averages them at the end.
4.  **Cleanup**: rarely updated features are dropped when a frequency cutoff is
    configured, and zero weights are condensed away.

:meth:`PerceptronTrainer.train` can chain several passes: a second pass
restricted to the features that survived the first one, and further *shards*
retrained on randomly pruned feature sets, all averaged into the final model.
"""
from __future__ import annotations
import random
import time
from typing import AbstractSet, Any, Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd
from tqdm import tqdm

from .batch import BatchCoordinator
from .config import TrainOptions
from .ensemble import Ensembler
from .io_utils import checkpoint_path, temp_checkpoint_path
from .model import PerceptronModel
from .training import ExampleTrainer, TrainingInvariantError
from .types import CheckpointSink, Evaluator, Oracle, ReorderingOracle, StateFactory, TrainingExample
from .weights import WeightStore

AUGMENT_MIN_TRANSITIONS = 10
AUGMENT_PROBABILITY = 0.5
AUGMENT_PIVOT_OFFSET = 7
MOST_COMMON_ERRORS = 9


def augment_data(training_data: Sequence[TrainingExample], rng: random.Random) -> List[TrainingExample]:
    """
    Returns truncated copies of some long examples.

    Each example with more than ten transitions is picked with probability
    one half and copied with a random pivot, so training also starts from
    configurations deep inside a sentence. Pivots range from 7 up to four
    transitions before the end.

    Args:
        training_data: The original examples.
        rng: The random generator driving the run.

    Returns:
        Only the new examples; the caller concatenates them with the originals.
    """
    augmented = []
    for example in training_data:
        size = len(example.transitions)
        if size > AUGMENT_MIN_TRANSITIONS and rng.random() < AUGMENT_PROBABILITY:
            pivot = rng.randrange(size - AUGMENT_MIN_TRANSITIONS) + AUGMENT_PIVOT_OFFSET
            augmented.append(example.with_pivot(pivot))
    return augmented


def prune_features(features: AbstractSet[str], rng: random.Random, drop: float) -> Set[str]:
    """Keeps each feature with probability ``1 - drop``, never returning an empty set."""
    ordered = sorted(features)
    pruned = {feature for feature in ordered if rng.random() > drop}
    if not pruned and ordered:
        pruned.add(ordered[0])
    return pruned


def most_common_errors(
    first_errors: Sequence[Tuple[int, int]], top: int = MOST_COMMON_ERRORS
) -> List[Tuple[int, int, int]]:
    """Returns up to ``top`` ``(predicted, gold, count)`` triples, most frequent first."""
    if not first_errors:
        return []
    counts = pd.DataFrame(list(first_errors), columns=["predicted", "gold"]).value_counts().head(top)
    return [(int(predicted), int(gold), int(count)) for (predicted, gold), count in counts.items()]


class PerceptronTrainer:
    """
    Trains a :class:`~shiftreduce.model.PerceptronModel` in place.

    Attributes:
        model: The model being trained. Its weights are replaced when passes
               are restarted or models are averaged.
        options: The validated training options.
        state_factory: Builds the initial configuration of a gold tree.
        oracle: Dynamic oracle for the ORACLE method.
        reordering_oracle: For the REORDER_ORACLE and REORDER_BEAM methods.
        evaluator: Scores a model on dev data. Without one (or without dev
                   data) there is no early stopping and no averaging.
        checkpoint_sink: Receives model snapshots and file names.
    """

    def __init__(
        self,
        model: PerceptronModel,
        options: TrainOptions,
        state_factory: StateFactory,
        *,
        oracle: Optional[Oracle] = None,
        reordering_oracle: Optional[ReorderingOracle] = None,
        evaluator: Optional[Evaluator] = None,
        checkpoint_sink: Optional[CheckpointSink] = None,
    ):
        self.model = model
        self.options = options
        self.state_factory = state_factory
        self.oracle = oracle
        self.reordering_oracle = reordering_oracle
        self.evaluator = evaluator
        self.checkpoint_sink = checkpoint_sink
        self._history: List[Dict[str, Any]] = []
        self._pass_number = 0
        self._learning_rate = options.learning_rate

    @property
    def history(self) -> pd.DataFrame:
        """One row per training iteration across all passes."""
        return pd.DataFrame(
            self._history,
            columns=[
                "pass", "iteration", "num_correct", "num_wrong", "num_features",
                "num_weights", "dev_score", "learning_rate", "seconds",
            ],
        )

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------
    def train(
        self,
        training_data: Sequence[TrainingExample],
        dev_data: Any = None,
        serialized_path: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> PerceptronModel:
        """
        Trains the model, retraining on restricted feature sets if configured.

        When a frequency cutoff is combined with `retrain_after_cutoff`, or
        more than one shard is requested, a first pass decides the feature
        vocabulary, the weights are reset, and a second pass trains only those
        features. Every further shard repeats the second pass on a randomly
        pruned copy of the vocabulary, and all shards are averaged.
        The learning rate is never reset between passes: each pass continues
        from the rate the previous one decayed to.

        Args:
            training_data: The gold examples.
            dev_data: Held-out data passed to the evaluator.
            serialized_path: Base file name for checkpoints.
            rng: Random generator; defaults to one seeded with `options.seed`.

        Returns:
            The trained model (the same object as `self.model`).
        """
        opts = self.options
        rng = rng if rng is not None else random.Random(opts.seed)
        self._learning_rate = opts.learning_rate

        retrain = (opts.retrain_after_cutoff and opts.feature_frequency_cutoff > 0) or opts.retrain_shards > 1
        if not retrain:
            self._train_pass(training_data, dev_data, serialized_path, rng, None)
            return self.model

        temp_path = temp_checkpoint_path(serialized_path) if serialized_path else None
        self._train_pass(training_data, dev_data, temp_path, rng, None)
        if temp_path and self.checkpoint_sink is not None:
            self.checkpoint_sink(self.model.copy(), temp_path)

        print("Beginning retraining")
        features = self.model.weights.features()
        self.model.reset_weights()
        self._train_pass(training_data, dev_data, serialized_path, rng, features)

        if opts.retrain_shards > 1:
            shards = [self.model.weights.copy()]
            for shard in range(1, opts.retrain_shards):
                print(f"Beginning retraining of shard {shard + 1}")
                pruned = prune_features(features, rng, opts.retrain_shard_feature_drop)
                self.model.reset_weights()
                self._train_pass(training_data, dev_data, serialized_path, rng, pruned)
                shards.append(self.model.weights.copy())
            print(f"Averaging {opts.retrain_shards} shards")
            self.model.weights = WeightStore.merge_average(shards)
            self.model.weights.condense()
            if self._can_evaluate(dev_data):
                self.evaluate(dev_data, f"Dev score for {opts.retrain_shards} averaged shards")

        return self.model

    def evaluate(self, dev_data: Any, message: str, weights: Optional[WeightStore] = None) -> float:
        """Scores the model (or the model with `weights` swapped in) on dev data."""
        model = self.model
        if weights is not None:
            model = PerceptronModel(model.transition_index, model.feature_factory, weights)
        score = float(self.evaluator(model, dev_data))
        print(f"{message}: {score}")
        return score

    # ------------------------------------------------------------------
    # One full pass
    # ------------------------------------------------------------------
    def _can_evaluate(self, dev_data: Any) -> bool:
        return self.evaluator is not None and dev_data is not None

    def _train_pass(
        self,
        training_data: Sequence[TrainingExample],
        dev_data: Any,
        serialized_path: Optional[str],
        rng: random.Random,
        allowed_features: Optional[AbstractSet[str]],
    ) -> int:
        """Runs the iteration loop once. Returns the last iteration run."""
        opts = self.options
        self._pass_number += 1
        can_evaluate = self._can_evaluate(dev_data)
        learning_rate = self._learning_rate

        ensembler = Ensembler(opts.averaged_models) if opts.averaged_models > 0 and can_evaluate else None

        # Only unrestricted passes count feature frequencies.
        frequencies: Optional[Dict[str, int]] = None
        if opts.feature_frequency_cutoff > 1 and allowed_features is None:
            frequencies = {}

        example_trainer = ExampleTrainer(
            self.model,
            opts.training_method,
            self.state_factory,
            learning_rate=learning_rate,
            beam_size=opts.beam_size,
            oracle=self.oracle,
            reordering_oracle=self.reordering_oracle,
        )

        best_score = 0.0
        best_iteration = 0
        iteration = 0
        with BatchCoordinator(example_trainer, opts.training_threads) as coordinator:
            for iteration in range(1, opts.training_iterations + 1):
                started = time.perf_counter()
                num_correct = 0
                num_wrong = 0
                first_errors: List[Tuple[int, int]] = []

                data = list(training_data)
                if opts.augment_data:
                    data.extend(augment_data(training_data, rng))
                rng.shuffle(data)
                print(f"Original list {len(training_data)}; augmented {len(data)}")

                batch_starts = range(0, len(data), opts.batch_size)
                for start in tqdm(
                    batch_starts,
                    desc=f"Iteration {iteration}",
                    unit="batch",
                    disable=not opts.show_progress,
                ):
                    result = coordinator.run_batch(data[start : start + opts.batch_size])
                    if result.num_wrong < len(result.first_errors):
                        raise TrainingInvariantError(
                            f"Batch reported {result.num_wrong} wrong transitions "
                            f"but {len(result.first_errors)} first errors"
                        )
                    num_correct += result.num_correct
                    num_wrong += result.num_wrong
                    first_errors.extend(result.first_errors)
                    coordinator.apply_updates(
                        result.updates, self.model.weights, allowed_features, frequencies
                    )

                if opts.l2_reg > 0.0:
                    self.model.weights.l2_reg(opts.l2_reg)
                if opts.l1_reg > 0.0:
                    self.model.weights.l1_reg(opts.l1_reg)

                elapsed = time.perf_counter() - started
                print(f"Iteration {iteration} took {elapsed:.1f}s")
                print(f"While training, got {num_correct} transitions correct and {num_wrong} transitions wrong")
                self.model.output_stats()
                self._report_errors(first_errors)

                dev_score = 0.0
                stalled = False
                if can_evaluate:
                    dev_score = self.evaluate(dev_data, f"Dev score for iteration {iteration}")
                    if dev_score > best_score:
                        print(f"New best dev score (previous best {best_score})")
                        best_score = dev_score
                        best_iteration = iteration
                    else:
                        print(
                            f"Failed to improve for {iteration - best_iteration} iteration(s) "
                            f"on previous best score of {best_score}"
                        )
                        limit = opts.stalled_iteration_limit
                        stalled = limit > 0 and iteration - best_iteration >= limit

                stats = self.model.weights.stats()
                self._history.append({
                    "pass": self._pass_number,
                    "iteration": iteration,
                    "num_correct": num_correct,
                    "num_wrong": num_wrong,
                    "num_features": stats["num_features"],
                    "num_weights": stats["num_weights"],
                    "dev_score": dev_score if can_evaluate else None,
                    "learning_rate": learning_rate,
                    "seconds": elapsed,
                })

                if stalled:
                    print("Failed to improve for too long, stopping training")
                    break

                if ensembler is not None:
                    ensembler.add(self.model, dev_score)

                if (
                    opts.checkpoint_frequency > 0
                    and serialized_path
                    and self.checkpoint_sink is not None
                    and iteration % opts.checkpoint_frequency == 0
                ):
                    self.checkpoint_sink(
                        self.model.copy(), checkpoint_path(serialized_path, iteration, dev_score)
                    )

                if iteration % opts.learning_rate_decay_period == 0 and opts.learning_rate_decay > 0.0:
                    learning_rate *= opts.learning_rate_decay
                    self._learning_rate = learning_rate
                    example_trainer.learning_rate = learning_rate

        if ensembler is not None and len(ensembler) > 0:
            if opts.cv_averaged_models:
                weights, _, _ = ensembler.cross_validate(
                    lambda candidate: self.evaluate(dev_data, "Dev score for averaged models", candidate)
                )
            else:
                weights = ensembler.average()
            self.model.weights = weights

        if frequencies is not None:
            cutoff = opts.feature_frequency_cutoff
            self.model.weights.filter({f for f, count in frequencies.items() if count >= cutoff})

        self.model.weights.condense()
        return iteration

    def _report_errors(self, first_errors: Sequence[Tuple[int, int]]) -> None:
        ranked = most_common_errors(first_errors)
        if not ranked:
            return
        index = self.model.transition_index

        def name(i: int) -> str:
            return str(index.get(i)) if i >= 0 else "<unindexed>"

        print("Most common transition errors:")
        for rank, (predicted, gold, count) in enumerate(ranked, start=1):
            print(f"  # {rank}: {name(gold)} -> {name(predicted)} happened {count} times")
