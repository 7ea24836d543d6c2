"""A minimal transition system for sequence tagging.

Tagging a sentence left to right is the simplest shift-reduce problem there
is: each transition assigns a tag to the next word. It is small enough to
reason about in tests, yet it exercises every part of the trainer, including
the oracle and reordering methods: tags are independent decisions, so after a
mistake the rest of the gold sequence is still a valid continuation.

This module provides the states and transitions, two registered feature
factories (`word` and `history`), the oracles, an accuracy evaluator, JSON
corpus loading and a helper that wires a
:class:`~shiftreduce.trainer.PerceptronTrainer` for a tagged corpus.
"""
from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from .config import TrainOptions
from .features import build_feature_factory, register_feature_factory
from .model import PerceptronModel
from .trainer import PerceptronTrainer
from .transition_index import TransitionIndex
from .types import CheckpointSink, OracleTransition, TrainingExample

START = "<s>"
END = "</s>"


@dataclass(frozen=True)
class TaggedSentence:
    words: Tuple[str, ...]
    tags: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.words)


@dataclass(frozen=True)
class TagConstraint:
    """Restricts the tags allowed at one position."""

    position: int
    allowed: Tuple[str, ...]


@dataclass(frozen=True)
class TagState:
    """A partially tagged sentence. Gold tags are never consulted."""

    words: Tuple[str, ...]
    position: int = 0
    transitions: Tuple["TagTransition", ...] = ()
    score: float = 0.0

    def is_finished(self) -> bool:
        return self.position >= len(self.words)

    def are_transitions_equal(self, other: "TagState") -> bool:
        return self.transitions == other.transitions

    def word(self, offset: int) -> str:
        i = self.position + offset
        if i < 0:
            return START
        if i >= len(self.words):
            return END
        return self.words[i]

    def previous_tag(self, offset: int) -> str:
        i = len(self.transitions) - offset
        if i < 0:
            return START
        return self.transitions[i].label

    @property
    def tags(self) -> Tuple[str, ...]:
        return tuple(t.label for t in self.transitions)


@dataclass(frozen=True)
class TagTransition:
    """Assigns `label` to the next word."""

    label: str

    def is_legal(self, state: TagState, constraints: Optional[Sequence[TagConstraint]] = None) -> bool:
        if state.is_finished():
            return False
        for constraint in constraints or ():
            if constraint.position == state.position and self.label not in constraint.allowed:
                return False
        return True

    def apply(self, state: TagState, score: float = 0.0) -> TagState:
        return TagState(
            state.words, state.position + 1, state.transitions + (self,), state.score + score
        )

    def __str__(self) -> str:
        return self.label


def initial_state(sentence: TaggedSentence) -> TagState:
    return TagState(tuple(sentence.words))


def make_examples(sentences: Sequence[TaggedSentence]) -> List[TrainingExample]:
    return [TrainingExample(s, tuple(TagTransition(t) for t in s.tags)) for s in sentences]


@register_feature_factory("word")
class WordFeatureFactory:
    """Word identity and suffix features in a window around the next word."""

    def __init__(self, window: str = "1"):
        self.window = int(window)
        if self.window < 0:
            raise ValueError(f"window must be non-negative, got {window}")

    def featurize(self, state: TagState) -> List[str]:
        word = state.word(0)
        features = ["BIAS", f"W0={word}", f"W0S3={word[-3:]}", f"W0P1={word[:1]}"]
        for offset in range(1, self.window + 1):
            features.append(f"W-{offset}={state.word(-offset)}")
            features.append(f"W+{offset}={state.word(offset)}")
        return features


@register_feature_factory("history")
class HistoryFeatureFactory:
    """Previous-tag n-gram features."""

    def __init__(self, order: str = "2"):
        self.order = int(order)
        if self.order < 1:
            raise ValueError(f"order must be at least 1, got {order}")

    def featurize(self, state: TagState) -> List[str]:
        features = []
        history: List[str] = []
        for offset in range(1, self.order + 1):
            history.insert(0, state.previous_tag(offset))
            features.append(f"H{offset}={'|'.join(history)}")
        features.append(f"T-1W0={state.previous_tag(1)}|{state.word(0)}")
        return features


class TaggingOracle:
    """The gold tag of the next word is the only acceptable transition."""

    def gold_transition(self, example: TrainingExample, state: TagState) -> OracleTransition:
        if state.is_finished():
            return OracleTransition(None)
        return OracleTransition(TagTransition(example.tree.tags[state.position]))


class TaggingReorderingOracle:
    """After a wrong tag the remaining gold tags are still a valid continuation."""

    def reorder(self, state: TagState, chosen: Any, transitions: List[Any]) -> bool:
        if not transitions:
            return False
        transitions.pop(0)
        return True


def tagging_accuracy(model: PerceptronModel, sentences: Sequence[TaggedSentence]) -> float:
    """Greedy tagging accuracy on `sentences`, in percent."""
    correct = 0
    total = 0
    for sentence in sentences:
        predicted = model.parse(initial_state(sentence)).tags
        correct += sum(1 for p, g in zip(predicted, sentence.tags) if p == g)
        total += len(sentence.tags)
    if total == 0:
        return 0.0
    return 100.0 * correct / total


def build_tagging_trainer(
    sentences: Sequence[TaggedSentence],
    options: TrainOptions,
    checkpoint_sink: Optional[CheckpointSink] = None,
) -> Tuple[PerceptronTrainer, List[TrainingExample]]:
    """
    Wires a trainer for a tagged corpus.

    Args:
        sentences: The training corpus.
        options: Training options. `options.feature_factory` must name
                 registered factories, e.g. "word(2);history".
        checkpoint_sink: Optional sink for intermediate models.

    Returns:
        The trainer and the training examples built from `sentences`.
    """
    examples = make_examples(sentences)
    index = TransitionIndex.from_examples(examples)
    model = PerceptronModel(index, build_feature_factory(options.feature_factory))
    trainer = PerceptronTrainer(
        model,
        options,
        initial_state,
        oracle=TaggingOracle(),
        reordering_oracle=TaggingReorderingOracle(),
        evaluator=tagging_accuracy,
        checkpoint_sink=checkpoint_sink,
    )
    return trainer, examples


def load_tagged_sentences(path: str) -> List[TaggedSentence]:
    """
    Loads a tagged corpus from a JSON file.

    The file holds a "sentences" key with a list of `{"words": [...],
    "tags": [...]}` objects.

    Raises:
        FileNotFoundError: If the file at the specified path does not exist.
        ValueError: If the file is not valid JSON, or a sentence has a
                    different number of words and tags.
        TypeError: If the "sentences" key is missing or not a list, or an item
                   in the list is malformed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Corpus file not found at: {path}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from {path}: {e}")

    items = data.get("sentences") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise TypeError(f"Expected a 'sentences' key with a list of objects in {path}")

    out = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise TypeError(f"Sentence at index {i} in {path} is not a dictionary.")
        words, tags = item.get("words"), item.get("tags")
        if not isinstance(words, list) or not isinstance(tags, list):
            raise TypeError(f"Sentence at index {i} in {path} needs 'words' and 'tags' lists.")
        if len(words) != len(tags):
            raise ValueError(
                f"Sentence at index {i} in {path} has {len(words)} words but {len(tags)} tags."
            )
        out.append(TaggedSentence(tuple(str(w) for w in words), tuple(str(t) for t in tags)))
    return out


def save_tagged_sentences(path: str, sentences: Sequence[TaggedSentence]) -> None:
    data = {"sentences": [{"words": list(s.words), "tags": list(s.tags)} for s in sentences]}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
