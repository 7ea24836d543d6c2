"""Provides utility functions for saving and loading model weights.

Weights are stored as JSON: the transition vocabulary under a "transitions"
key (as display names, in id order) and the sparse weights under a "weights"
key as `{feature: {transition id: score}}`. Loading is strict about structure
and reports the offending feature when something is malformed. Checkpoint
file names are derived here too, so every sink names files the same way.
"""
from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, List, Tuple

from .model import PerceptronModel
from .weights import Weight, WeightStore


def _split_suffixes(path: str) -> Tuple[Path, str, str]:
    p = Path(path)
    suffixes = "".join(p.suffixes)
    stem = p.name[: len(p.name) - len(suffixes)] if suffixes else p.name
    return p.parent, stem, suffixes


def checkpoint_path(path: str, iteration: int, score: float) -> str:
    """Returns e.g. `model-0005-87.32.json` for `model.json`."""
    parent, stem, suffixes = _split_suffixes(path)
    return str(parent / f"{stem}-{iteration:04d}-{score:.2f}{suffixes}")


def temp_checkpoint_path(path: str) -> str:
    """Returns e.g. `model-temp.json` for `model.json`."""
    parent, stem, suffixes = _split_suffixes(path)
    return str(parent / f"{stem}-temp{suffixes}")


def save_weights(path: str, model: PerceptronModel) -> None:
    """
    Saves a model's transition names and weights to a JSON file.

    Args:
        path: The destination path. Parent directories are created.
        model: The model to save. Transitions are written with `str()`.
    """
    data = {
        "transitions": [str(t) for t in model.transition_index],
        "weights": {
            feature: {str(index): value for index, value in weight.items()}
            for feature, weight in model.weights.items()
        },
    }
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=1)


def load_weights(path: str) -> Tuple[List[str], WeightStore]:
    """
    Loads transition names and weights written by `save_weights`.

    Args:
        path: The path to the JSON model file.

    Returns:
        A tuple of the transition names in id order and the `WeightStore`.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON or a transition id is out of
                    range.
        TypeError: If the JSON structure is incorrect.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Model file not found at: {path}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from {path}: {e}")

    if not isinstance(data, dict):
        raise TypeError(f"Expected a JSON object at the root of {path}")
    transitions = data.get("transitions")
    raw_weights = data.get("weights")
    if not isinstance(transitions, list):
        raise TypeError(f"Expected a 'transitions' key with a list in {path}")
    if not isinstance(raw_weights, dict):
        raise TypeError(f"Expected a 'weights' key with an object in {path}")

    weights: Dict[str, Weight] = {}
    for feature, scores in raw_weights.items():
        if not isinstance(scores, dict):
            raise TypeError(f"Weights for feature '{feature}' in {path} are not an object.")
        parsed = {int(index): float(value) for index, value in scores.items()}
        out_of_range = [i for i in parsed if not 0 <= i < len(transitions)]
        if out_of_range:
            raise ValueError(
                f"Feature '{feature}' in {path} references unknown transition ids {out_of_range}"
            )
        weights[feature] = Weight(parsed)
    return [str(t) for t in transitions], WeightStore(len(transitions), weights)


class JsonCheckpointSink:
    """Checkpoint sink that writes models with `save_weights`."""

    def __init__(self) -> None:
        self.saved: List[str] = []

    def __call__(self, model: PerceptronModel, path: str) -> None:
        save_weights(path, model)
        self.saved.append(path)
        print(f"Saved checkpoint to {path}")

