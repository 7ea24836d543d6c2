import json
from pathlib import Path

import pytest

from shiftreduce.config import TrainOptions
from shiftreduce.scorer import NoLegalTransitionError
from shiftreduce.tagging import (
    END,
    START,
    TagConstraint,
    TaggedSentence,
    TaggingOracle,
    TaggingReorderingOracle,
    TagState,
    TagTransition,
    build_tagging_trainer,
    initial_state,
    load_tagged_sentences,
    make_examples,
    save_tagged_sentences,
    tagging_accuracy,
)

from conftest import make_sentence


def test_state_pads_words_and_tags_outside_the_sentence() -> None:
    state = TagState(("a", "dog"))

    assert state.word(-1) == START
    assert state.word(2) == END
    assert state.previous_tag(1) == START
    assert not state.is_finished()

    done = TagTransition("N").apply(TagTransition("D").apply(state, 1.0), 2.0)
    assert done.is_finished()
    assert done.tags == ("D", "N")
    assert done.score == pytest.approx(3.0)


def test_transition_legality_honours_constraints() -> None:
    state = TagState(("a", "dog"), 1, (TagTransition("D"),))
    constraints = [TagConstraint(1, ("N",))]

    assert TagTransition("N").is_legal(state, constraints)
    assert not TagTransition("V").is_legal(state, constraints)
    assert TagTransition("V").is_legal(state)
    assert not TagTransition("N").is_legal(TagState(("a",), 1))


def test_oracle_answers_with_the_next_gold_tag() -> None:
    example, = make_examples([make_sentence("a/D dog/N")])
    oracle = TaggingOracle()

    assert oracle.gold_transition(example, initial_state(example.tree)).transition == TagTransition("D")
    finished = TagState(("a", "dog"), 2)
    assert oracle.gold_transition(example, finished).transition is None


def test_reordering_oracle_drops_the_replaced_gold_tag() -> None:
    remaining = [TagTransition("N"), TagTransition("V")]
    reorderer = TaggingReorderingOracle()

    assert reorderer.reorder(TagState(("x",)), TagTransition("D"), remaining)
    assert remaining == [TagTransition("V")]
    assert not reorderer.reorder(TagState(("x",)), TagTransition("D"), [])


def test_tagging_accuracy_and_constrained_parse(toy_sentences) -> None:
    options = TrainOptions(training_iterations=1, averaged_models=0, show_progress=False)
    trainer, _ = build_tagging_trainer(toy_sentences, options)
    model = trainer.model

    assert tagging_accuracy(model, []) == 0.0
    parsed = model.parse(initial_state(toy_sentences[0]), [TagConstraint(2, ("A",))])
    assert parsed.tags[2] == "A"
    with pytest.raises(NoLegalTransitionError):
        model.parse(initial_state(toy_sentences[0]), [TagConstraint(0, ("unknown",))])


def test_tagged_corpus_round_trips_through_json(tmp_path: Path, toy_sentences) -> None:
    path = tmp_path / "corpus.json"

    save_tagged_sentences(str(path), toy_sentences)

    assert load_tagged_sentences(str(path)) == toy_sentences


def test_load_tagged_sentences_errors(tmp_path: Path) -> None:
    path = tmp_path / "corpus.json"

    with pytest.raises(FileNotFoundError):
        load_tagged_sentences(str(path))

    path.write_text(json.dumps({"sentences": [{"words": ["a"], "tags": []}]}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_tagged_sentences(str(path))

    path.write_text(json.dumps({"sentences": {"words": []}}), encoding="utf-8")
    with pytest.raises(TypeError):
        load_tagged_sentences(str(path))

    path.write_text(json.dumps({"sentences": ["a/D"]}), encoding="utf-8")
    with pytest.raises(TypeError):
        load_tagged_sentences(str(path))


def test_tagged_sentence_length() -> None:
    assert len(TaggedSentence(("a", "b"), ("D", "N"))) == 2
