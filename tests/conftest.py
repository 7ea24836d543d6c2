"""Test configuration helpers and shared toy corpora."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest


def _ensure_project_root_on_path() -> None:
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


_ensure_project_root_on_path()

from shiftreduce.tagging import TaggedSentence  # noqa: E402

TOY_CORPUS = [
    "the/D dog/N barks/V",
    "a/D cat/N sleeps/V",
    "the/D cat/N runs/V",
    "a/D big/A dog/N sleeps/V",
    "the/D small/A cat/N barks/V",
    "dogs/N run/V",
    "cats/N sleep/V",
    "a/D small/A dog/N runs/V",
]


def make_sentence(text: str) -> TaggedSentence:
    """Parses "word/TAG word/TAG ..." into a TaggedSentence."""
    pairs = [token.rsplit("/", 1) for token in text.split()]
    return TaggedSentence(tuple(w for w, _ in pairs), tuple(t for _, t in pairs))


@pytest.fixture
def toy_sentences() -> List[TaggedSentence]:
    return [make_sentence(line) for line in TOY_CORPUS]


LONG_SENTENCES = [
    "the/D big/A dog/N barks/V the/D small/A cat/N sleeps/V a/D big/A cat/N runs/V",
    "a/D small/A dog/N runs/V the/D big/A cat/N barks/V the/D small/A dog/N sleeps/V",
    "the/D cat/N sleeps/V a/D dog/N barks/V the/D big/A dog/N runs/V dogs/N run/V",
]


@pytest.fixture
def long_sentences(toy_sentences) -> List[TaggedSentence]:
    """The toy corpus plus sentences long enough to be augmented."""
    return toy_sentences + [make_sentence(line) for line in LONG_SENTENCES]
