import json
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scripts import evaluate_model, train_model
from shiftreduce.io_utils import load_weights
from shiftreduce.tagging import save_tagged_sentences


def _write_corpus(path: Path, sentences) -> str:
    save_tagged_sentences(str(path), sentences)
    return str(path)


def test_train_then_evaluate_from_the_command_line(tmp_path: Path, toy_sentences, capsys) -> None:
    corpus = _write_corpus(tmp_path / "train.json", toy_sentences)
    config = tmp_path / "config.yaml"
    config.write_text(
        "training:\n  training_method: GOLD\n  averaged_models: 2\n  checkpoint_frequency: 5\n",
        encoding="utf-8",
    )
    model_path = tmp_path / "out" / "model.json"

    train_model.main([
        "--train", corpus,
        "--dev", corpus,
        "--model", str(model_path),
        "--config", str(config),
        "--iterations", "15",
        "--no-progress",
    ])

    names, weights = load_weights(str(model_path))
    assert set(names) == {"D", "N", "V", "A"}
    assert len(weights) > 0
    checkpoints = sorted(p.name for p in model_path.parent.glob("model-*.json"))
    assert checkpoints and all(name.startswith(("model-0005-", "model-0010-", "model-0015-")) for name in checkpoints)

    disagreements = tmp_path / "disagreements.csv"
    accuracy = evaluate_model.main([
        "--model", str(model_path),
        "--reference", corpus,
        "--disagreements-out", str(disagreements),
    ])
    out = capsys.readouterr().out
    assert accuracy == pytest.approx(100.0)
    assert "Accuracy: 100.00" in out
    assert not disagreements.exists()


def test_train_model_reports_missing_corpus(tmp_path: Path, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        train_model.main(["--train", str(tmp_path / "missing.json"), "--model", str(tmp_path / "m.json")])

    assert excinfo.value.code == 1
    assert "Corpus file not found" in capsys.readouterr().err


def test_train_model_rejects_unknown_method(tmp_path: Path, toy_sentences) -> None:
    corpus = _write_corpus(tmp_path / "train.json", toy_sentences)

    with pytest.raises(SystemExit) as excinfo:
        train_model.main(["--train", corpus, "--model", str(tmp_path / "m.json"), "--method", "annealing"])

    assert excinfo.value.code == 1


def test_evaluate_model_writes_disagreements(tmp_path: Path, toy_sentences) -> None:
    corpus = _write_corpus(tmp_path / "ref.json", toy_sentences)
    model_path = tmp_path / "empty.json"
    model_path.write_text(json.dumps({"transitions": ["D", "N", "V", "A"], "weights": {}}), encoding="utf-8")
    disagreements = tmp_path / "reports" / "disagreements.csv"

    accuracy = evaluate_model.main([
        "--model", str(model_path),
        "--reference", corpus,
        "--disagreements-out", str(disagreements),
    ])

    lines = disagreements.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "sentence,index,token,generated,reference"
    # An empty model tags everything with the first transition.
    expected_wrong = sum(1 for s in toy_sentences for tag in s.tags if tag != "D")
    assert len(lines) - 1 == expected_wrong
    total = sum(len(s) for s in toy_sentences)
    assert accuracy == pytest.approx(100.0 * (total - expected_wrong) / total)
