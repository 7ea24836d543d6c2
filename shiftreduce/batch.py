"""Fork-join scoring of training batches.

A batch is processed in two strictly separated phases:

1.  **Read phase**: every example is scored against the weights as they stand
    when the batch starts. With more than one thread the examples are
    submitted to a `ThreadPoolExecutor`; the coordinator then waits on each
    future in submission order, which doubles as the join barrier.
2.  **Write phase**: back on the coordinating thread, the collected updates are
    applied one after another in dispatch order.

No worker ever sees another worker's updates from the same batch, and the
application order never depends on which worker finished first. A batch
therefore produces exactly the same updates and counts whatever the thread
count, and no locks are needed around the weights.
"""
from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor
from typing import AbstractSet, Dict, List, Optional, Sequence

from .types import BatchResult, ExampleResult, TrainingExample, TrainingUpdate
from .weights import WeightStore
from .training import ExampleTrainer


class BatchCoordinator:
    """
    Scores batches of examples and applies the resulting updates.

    Use it as a context manager so the worker pool is shut down when training
    ends::

        with BatchCoordinator(trainer, threads=4) as coordinator:
            result = coordinator.run_batch(batch)
            coordinator.apply_updates(result.updates, model.weights)

    Attributes:
        trainer: The per-example update policy, shared by all workers.
        threads: Worker count. 1 scores on the calling thread.
    """

    def __init__(self, trainer: ExampleTrainer, threads: int = 1):
        if threads < 1:
            raise ValueError(f"threads must be at least 1, got {threads}")
        self.trainer = trainer
        self.threads = threads
        self._executor: Optional[ThreadPoolExecutor] = None
        if threads > 1:
            self._executor = ThreadPoolExecutor(max_workers=threads, thread_name_prefix="train-worker")

    def run_batch(self, examples: Sequence[TrainingExample]) -> BatchResult:
        """
        Scores every example of a batch against the current weights.

        Args:
            examples: The batch, in the order its updates must be applied.

        Returns:
            The concatenated updates, counts and first errors, in dispatch
            order.

        Raises:
            Any exception raised while training an example. A worker failure
            aborts the whole batch.
        """
        batch = BatchResult()
        if self._executor is None:
            for example in examples:
                batch.add(self.trainer.train_example(example))
            return batch

        futures: List[Future[ExampleResult]] = [
            self._executor.submit(self.trainer.train_example, example) for example in examples
        ]
        for future in futures:
            batch.add(future.result())
        return batch

    @staticmethod
    def apply_updates(
        updates: Sequence[TrainingUpdate],
        weights: WeightStore,
        allowed_features: Optional[AbstractSet[str]] = None,
        feature_frequencies: Optional[Dict[str, int]] = None,
    ) -> None:
        """
        Applies updates to ``weights`` in order.

        Args:
            updates: The updates to apply.
            weights: The store to mutate.
            allowed_features: When given, features outside this set are never
                              updated or counted.
            feature_frequencies: When given, each applied feature's count goes
                                 up by 2 for a promote-and-demote update and by
                                 1 for a one-sided update.
        """
        for update in updates:
            if allowed_features is None:
                features = update.features
            else:
                features = [f for f in update.features if f in allowed_features]
            weights.update_weight(
                features, update.gold_transition, update.predicted_transition, update.delta
            )
            if feature_frequencies is not None:
                increment = 2 if update.gold_transition >= 0 and update.predicted_transition >= 0 else 1
                for feature in features:
                    feature_frequencies[feature] = feature_frequencies.get(feature, 0) + increment

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "BatchCoordinator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
