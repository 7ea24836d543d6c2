import pytest

from shiftreduce.scorer import TransitionScorer
from shiftreduce.tagging import TagConstraint, TagState, TagTransition
from shiftreduce.transition_index import TransitionIndex
from shiftreduce.weights import Weight, WeightStore

LABELS = ["D", "N", "V", "A"]


def _make_scorer(**features) -> TransitionScorer:
    index = TransitionIndex(TagTransition(label) for label in LABELS)
    weights = WeightStore(len(index), {name: Weight(scores) for name, scores in features.items()})
    return TransitionScorer(weights, index)


def _state() -> TagState:
    return TagState(("the", "dog"))


def test_top_k_orders_by_score_descending() -> None:
    scorer = _make_scorer(f={0: 1.0, 1: 3.0, 2: 2.0, 3: -1.0})

    ranked = scorer.top_k(_state(), ["f"], True, 3)

    assert [r.index for r in ranked] == [1, 2, 0]
    assert [r.score for r in ranked] == [3.0, 2.0, 1.0]


def test_top_k_breaks_ties_towards_lower_ids() -> None:
    scorer = _make_scorer()

    ranked = scorer.top_k(_state(), ["unknown"], True, 2)

    assert [r.index for r in ranked] == [0, 1]
    assert scorer.best(_state(), []).index == 0


def test_top_k_tie_survives_heap_overflow() -> None:
    scorer = _make_scorer(f={1: 5.0, 2: 5.0, 3: 5.0})

    ranked = scorer.top_k(_state(), ["f"], True, 2)

    assert [r.index for r in ranked] == [1, 2]


def test_top_k_returns_everything_when_k_exceeds_vocabulary() -> None:
    scorer = _make_scorer(f={3: 1.0})

    ranked = scorer.top_k(_state(), ["f"], True, 10)

    assert [r.index for r in ranked] == [3, 0, 1, 2]


def test_top_k_respects_legality_constraints() -> None:
    scorer = _make_scorer(f={0: 10.0})
    constraints = [TagConstraint(0, ("N", "V"))]

    ranked = scorer.top_k(_state(), ["f"], True, 4, constraints)

    assert [r.index for r in ranked] == [1, 2]


def test_unrestricted_scoring_ignores_legality() -> None:
    scorer = _make_scorer(f={2: 1.0})
    finished = TagState(("the",), position=1)

    assert scorer.top_k(finished, ["f"], True, 2) == []
    assert scorer.best(finished, ["f"], True) is None
    assert scorer.best(finished, ["f"], False).index == 2


def test_top_k_rejects_non_positive_k() -> None:
    with pytest.raises(ValueError):
        _make_scorer().top_k(_state(), [], True, 0)
