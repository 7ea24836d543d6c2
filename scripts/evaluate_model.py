"""Command-line script for evaluating a trained tagging model.

Loads a model written by `train_model.py`, tags every sentence of a reference
corpus greedily, and reports token accuracy along with the most frequent
confusions. An optional CSV of every disagreement helps with error analysis.
"""
import argparse
import csv
import sys
from pathlib import Path

import pandas as pd

# Add project root to path to allow for package imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from shiftreduce.features import build_feature_factory
from shiftreduce.io_utils import load_weights
from shiftreduce.model import PerceptronModel
from shiftreduce.tagging import TagTransition, initial_state, load_tagged_sentences
from shiftreduce.transition_index import TransitionIndex


def load_tagging_model(path: str, feature_factory: str) -> PerceptronModel:
    names, weights = load_weights(path)
    index = TransitionIndex(TagTransition(name) for name in names)
    return PerceptronModel(index, build_feature_factory(feature_factory), weights)


def collect_disagreements(model: PerceptronModel, sentences) -> pd.DataFrame:
    """Returns one row per token with the predicted and reference tags."""
    rows = []
    for s_idx, sentence in enumerate(sentences):
        predicted = model.parse(initial_state(sentence)).tags
        for t_idx, (word, gold, guess) in enumerate(zip(sentence.words, sentence.tags, predicted)):
            rows.append({"sentence": s_idx, "index": t_idx, "token": word, "generated": guess, "reference": gold})
    return pd.DataFrame(rows, columns=["sentence", "index", "token", "generated", "reference"])


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Evaluate a trained tagging model against a reference corpus.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--model", required=True, help="Path to the trained model JSON file.")
    parser.add_argument("--reference", required=True, help="Path to the ground-truth tagged corpus JSON file.")
    parser.add_argument("--feature-factory", default="word;history", help="Feature factory spec used in training.")
    parser.add_argument("--disagreements-out", help="Optional: Path to write a detailed disagreements CSV file.")
    args = parser.parse_args(argv)

    try:
        print("Loading files...")
        model = load_tagging_model(args.model, args.feature_factory)
        sentences = load_tagged_sentences(args.reference)

        table = collect_disagreements(model, sentences)
        if table.empty:
            raise ValueError(f"No tokens to evaluate in {args.reference}")
        wrong = table[table["generated"] != table["reference"]]
        accuracy = 100.0 * (1.0 - len(wrong) / len(table))

        print("\n--- Comparison Metrics (vs. Reference) ---")
        print(f"Tokens: {len(table)}")
        print(f"Accuracy: {accuracy:.2f}")
        if not wrong.empty:
            print("Most common confusions (reference -> generated):")
            for (reference, generated), count in wrong.groupby(["reference", "generated"]).size().nlargest(9).items():
                print(f"  {reference} -> {generated}: {count}")

        if args.disagreements_out and not wrong.empty:
            Path(args.disagreements_out).parent.mkdir(parents=True, exist_ok=True)
            print(f"\nWriting {len(wrong)} disagreements to {args.disagreements_out}...")
            with open(args.disagreements_out, "w", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=["sentence", "index", "token", "generated", "reference"])
                writer.writeheader()
                writer.writerows(wrong.to_dict("records"))
        return accuracy

    except (FileNotFoundError, ValueError, TypeError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
