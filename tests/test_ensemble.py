import pytest

from shiftreduce.ensemble import Ensembler
from shiftreduce.model import PerceptronModel
from shiftreduce.tagging import TagTransition, WordFeatureFactory
from shiftreduce.transition_index import TransitionIndex
from shiftreduce.weights import Weight, WeightStore


def _make_model(value: float) -> PerceptronModel:
    index = TransitionIndex([TagTransition("D"), TagTransition("N")])
    return PerceptronModel(index, WordFeatureFactory(), WeightStore(2, {"f": Weight({0: value})}))


def _value(weights: WeightStore) -> float:
    return weights.get("f").get(0)


def test_ensembler_keeps_the_best_scoring_snapshots() -> None:
    ensembler = Ensembler(2)
    for value, score in [(1.0, 1.0), (3.0, 3.0), (2.0, 2.0)]:
        ensembler.add(_make_model(value), score)

    assert len(ensembler) == 2
    assert [score for score, _ in ensembler.ranked()] == [3.0, 2.0]


def test_ensembler_evicts_the_older_snapshot_on_ties() -> None:
    ensembler = Ensembler(1)
    ensembler.add(_make_model(1.0), 5.0)
    ensembler.add(_make_model(2.0), 5.0)

    (_, kept), = ensembler.ranked()
    assert _value(kept.weights) == 2.0


def test_ensembler_stores_independent_copies() -> None:
    ensembler = Ensembler(3)
    model = _make_model(1.0)
    ensembler.add(model, 1.0)

    model.weights.update_weight(["f"], 0, -1, 10.0)

    (_, kept), = ensembler.ranked()
    assert _value(kept.weights) == 1.0


def test_average_weights_every_snapshot_equally(capsys) -> None:
    ensembler = Ensembler(3)
    for value in (1.0, 2.0, 6.0):
        ensembler.add(_make_model(value), value)

    averaged = ensembler.average()

    assert _value(averaged) == pytest.approx(3.0)
    assert "Averaging 3 models with scores" in capsys.readouterr().out


def test_cross_validate_picks_the_best_prefix() -> None:
    ensembler = Ensembler(3)
    ensembler.add(_make_model(1.0), 3.0)
    ensembler.add(_make_model(3.0), 2.0)
    ensembler.add(_make_model(9.0), 1.0)

    weights, size, score = ensembler.cross_validate(lambda w: -abs(_value(w) - 2.0))

    assert size == 2
    assert score == pytest.approx(0.0)
    assert _value(weights) == pytest.approx(2.0)


def test_cross_validate_prefers_fewer_models_on_ties() -> None:
    ensembler = Ensembler(3)
    for value in (1.0, 2.0, 3.0):
        ensembler.add(_make_model(value), value)

    _, size, _ = ensembler.cross_validate(lambda w: 0.0)

    assert size == 1


def test_ensembler_rejects_bad_input() -> None:
    with pytest.raises(ValueError):
        Ensembler(0)
    with pytest.raises(ValueError):
        Ensembler(2).average()
    with pytest.raises(ValueError):
        Ensembler(2).cross_validate(lambda w: 0.0)
