"""Manages the loading and validation of training configuration.

This module defines the `TrainOptions` dataclass, the single typed container
for every knob of the perceptron trainer, and the `load_train_options`
function that reads those knobs from a YAML file. Options can sit at the root
of the file or under a `training:` key so that a training section can live
next to other settings in a shared config.
"""
from __future__ import annotations
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict

import yaml


class TrainingMethod(str, Enum):
    """The per-example update policies the trainer knows about."""

    GOLD = "GOLD"
    EARLY_TERMINATION = "EARLY_TERMINATION"
    ORACLE = "ORACLE"
    REORDER_ORACLE = "REORDER_ORACLE"
    BEAM = "BEAM"
    REORDER_BEAM = "REORDER_BEAM"

    @classmethod
    def parse(cls, value: Any) -> "TrainingMethod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            known = ", ".join(m.value for m in cls)
            raise ValueError(f"Unrecognized training method '{value}' (expected one of {known})")

    @property
    def is_beam(self) -> bool:
        return self in (TrainingMethod.BEAM, TrainingMethod.REORDER_BEAM)

    @property
    def needs_reordering(self) -> bool:
        return self in (TrainingMethod.REORDER_ORACLE, TrainingMethod.REORDER_BEAM)


@dataclass
class TrainOptions:
    """
    A typed configuration object that holds all settings for training.

    Attributes:
        training_method: Which update policy to train with.
        beam_size: Agenda size for the beam methods.
        batch_size: Number of examples scored against one frozen snapshot of
                    the weights before their updates are applied.
        training_threads: Worker threads used to score a batch. 1 scores on
                          the calling thread.
        training_iterations: Maximum number of passes over the data.
        stalled_iteration_limit: Stop after this many iterations without a new
                                 best dev score. 0 disables early stopping.
        learning_rate: Initial perceptron update size.
        learning_rate_decay: Multiplier applied to the learning rate every
                             `learning_rate_decay_period` iterations. 0 disables.
        learning_rate_decay_period: Iterations between learning rate decays.
        l1_reg: L1 shrinkage applied to every weight after each iteration.
        l2_reg: L2 decay applied to every weight after each iteration.
        feature_frequency_cutoff: Features updated fewer times than this are
                                  dropped at the end of training. Counting is
                                  only active for cutoffs above 1.
        retrain_after_cutoff: Retrain from scratch restricted to the features
                              that survived the cutoff.
        retrain_shards: Number of independently retrained models to average.
        retrain_shard_feature_drop: Fraction of features dropped for each shard
                                    after the first.
        averaged_models: Number of best-scoring checkpoints to average at the
                         end of training. 0 disables averaging.
        cv_averaged_models: Pick the number of averaged checkpoints by dev score.
        checkpoint_frequency: Hand a checkpoint to the sink every this many
                              iterations. 0 disables checkpoints.
        augment_data: Add randomly truncated copies of long examples each
                      iteration.
        seed: Seed for shuffling, augmentation and shard pruning.
        feature_factory: Spec string for `build_feature_factory`.
        show_progress: Display tqdm progress bars.
    """
    training_method: TrainingMethod = TrainingMethod.EARLY_TERMINATION
    beam_size: int = 1
    batch_size: int = 1
    training_threads: int = 1
    training_iterations: int = 40
    stalled_iteration_limit: int = 20
    learning_rate: float = 1.0
    learning_rate_decay: float = 0.0
    learning_rate_decay_period: int = 10
    l1_reg: float = 0.0
    l2_reg: float = 0.0
    feature_frequency_cutoff: int = 0
    retrain_after_cutoff: bool = True
    retrain_shards: int = 1
    retrain_shard_feature_drop: float = 0.25
    averaged_models: int = 8
    cv_averaged_models: bool = True
    checkpoint_frequency: int = 0
    augment_data: bool = True
    seed: int = 1234
    feature_factory: str = "word;history"
    show_progress: bool = True

    def __post_init__(self) -> None:
        self.training_method = TrainingMethod.parse(self.training_method)
        if self.training_method.is_beam and self.beam_size <= 0:
            raise ValueError(f"Illegal beam size {self.beam_size}")
        for name in ("batch_size", "training_threads", "learning_rate_decay_period", "retrain_shards"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")
        for name in (
            "training_iterations",
            "stalled_iteration_limit",
            "learning_rate_decay",
            "l1_reg",
            "l2_reg",
            "feature_frequency_cutoff",
            "averaged_models",
            "checkpoint_frequency",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")
        if not 0.0 <= self.retrain_shard_feature_drop <= 1.0:
            raise ValueError(
                f"retrain_shard_feature_drop must be within [0, 1], got {self.retrain_shard_feature_drop}"
            )

    @classmethod
    def field_names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrainOptions":
        """Builds options from a mapping, rejecting unknown keys."""
        unknown = set(data) - cls.field_names()
        if unknown:
            raise ValueError(f"Unknown training options: {', '.join(sorted(unknown))}")
        return cls(**data)


def load_train_options(path: str = "config.yaml", **overrides: Any) -> TrainOptions:
    """
    Loads training options from a YAML file.

    Args:
        path: The path to the YAML file.
        **overrides: Values that take precedence over the file, typically
                     command-line flags. `None` values are ignored.

    Returns:
        A validated `TrainOptions` object.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML cannot be parsed or an option is invalid.
        TypeError: If the root of the YAML file (or its `training:` section)
                   is not a dictionary.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            y = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file at {path}: {e}")

    if y is None:
        y = {}
    if not isinstance(y, dict):
        raise TypeError(f"Configuration file {path} must be a dictionary.")

    section = y.get("training", y)
    if not isinstance(section, dict):
        raise TypeError(f"The 'training' section of {path} must be a dictionary.")

    data = {k: v for k, v in section.items() if k in TrainOptions.field_names()}
    data.update({k: v for k, v in overrides.items() if v is not None})
    return TrainOptions.from_dict(data)
