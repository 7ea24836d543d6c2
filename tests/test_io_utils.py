import json
from pathlib import Path

import pytest

from shiftreduce.io_utils import (
    JsonCheckpointSink,
    checkpoint_path,
    load_weights,
    save_weights,
    temp_checkpoint_path,
)
from shiftreduce.model import PerceptronModel
from shiftreduce.tagging import TagTransition, WordFeatureFactory
from shiftreduce.transition_index import TransitionIndex
from shiftreduce.weights import Weight, WeightStore


def _make_model() -> PerceptronModel:
    index = TransitionIndex([TagTransition("D"), TagTransition("N")])
    weights = WeightStore(2, {"W0=the": Weight({0: 1.5}), "BIAS": Weight({0: -0.25, 1: 0.75})})
    return PerceptronModel(index, WordFeatureFactory(), weights)


def test_checkpoint_names_keep_all_suffixes(tmp_path: Path) -> None:
    base = str(tmp_path / "model.ser.gz")

    assert Path(checkpoint_path(base, 5, 87.321)).name == "model-0005-87.32.ser.gz"
    assert Path(temp_checkpoint_path(base)).name == "model-temp.ser.gz"
    assert Path(checkpoint_path("model", 12, 0.0)).name == "model-0012-0.00"


def test_saved_weights_load_back(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "model.json"
    model = _make_model()

    save_weights(str(path), model)
    names, weights = load_weights(str(path))

    assert names == ["D", "N"]
    assert weights == model.weights


def test_load_weights_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_weights(str(tmp_path / "missing.json"))


def test_load_weights_rejects_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "model.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        load_weights(str(path))


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"weights": {}},
        {"transitions": ["D"], "weights": []},
        {"transitions": ["D"], "weights": {"BIAS": [1.0]}},
    ],
)
def test_load_weights_rejects_bad_structure(tmp_path: Path, payload) -> None:
    path = tmp_path / "model.json"
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(TypeError):
        load_weights(str(path))


def test_load_weights_rejects_unknown_transition_ids(tmp_path: Path) -> None:
    path = tmp_path / "model.json"
    path.write_text(json.dumps({"transitions": ["D"], "weights": {"BIAS": {"3": 1.0}}}), encoding="utf-8")

    with pytest.raises(ValueError, match="BIAS"):
        load_weights(str(path))


def test_json_checkpoint_sink_writes_and_records(tmp_path: Path) -> None:
    sink = JsonCheckpointSink()
    path = str(tmp_path / "model-0001-50.00.json")

    sink(_make_model(), path)

    assert sink.saved == [path]
    assert Path(path).exists()
