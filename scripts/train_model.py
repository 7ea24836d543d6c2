"""Command-line script for training a shift-reduce perceptron tagger.

Reads a tagged JSON corpus, trains a model with the options from a YAML config
(optionally overridden by flags), and writes the final weights as JSON. With
`checkpoint_frequency` set, intermediate models are written next to the final
one as `<name>-<iteration>-<dev score>.json`.
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from shiftreduce.config import TrainOptions, load_train_options
from shiftreduce.io_utils import JsonCheckpointSink, save_weights
from shiftreduce.tagging import build_tagging_trainer, load_tagged_sentences, tagging_accuracy


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Train a shift-reduce perceptron model on a tagged corpus.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--train", required=True, help="Path to the training corpus JSON file.")
    parser.add_argument("--dev", help="Optional: Path to a dev corpus used for early stopping and averaging.")
    parser.add_argument("--model", required=True, help="Output path for the trained model JSON.")
    parser.add_argument("--config", help="Path to a YAML file with training options.")
    parser.add_argument("--method", help="Override the training method, e.g. BEAM or ORACLE.")
    parser.add_argument("--beam-size", type=int, help="Override the beam size.")
    parser.add_argument("--iterations", type=int, help="Override the number of training iterations.")
    parser.add_argument("--threads", type=int, help="Override the number of training threads.")
    parser.add_argument("--seed", type=int, help="Override the random seed.")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars.")
    return parser


def main(argv=None):
    """
    Main entry point for the command-line training script.

    1.  Loads training options from `--config` (or the defaults) and applies
        any command-line overrides.
    2.  Loads the training and dev corpora.
    3.  Trains, saving checkpoints if configured.
    4.  Saves the final model and reports its dev accuracy.
    """
    args = build_parser().parse_args(argv)
    overrides = {
        "training_method": args.method,
        "beam_size": args.beam_size,
        "training_iterations": args.iterations,
        "training_threads": args.threads,
        "seed": args.seed,
        "show_progress": False if args.no_progress else None,
    }

    try:
        if args.config:
            options = load_train_options(args.config, **overrides)
        else:
            options = TrainOptions.from_dict({k: v for k, v in overrides.items() if v is not None})

        print("Loading corpora...")
        train_sentences = load_tagged_sentences(args.train)
        dev_sentences = load_tagged_sentences(args.dev) if args.dev else None
        print(f"Loaded {len(train_sentences)} training sentences.")
        if dev_sentences is not None:
            print(f"Loaded {len(dev_sentences)} dev sentences.")
        if not train_sentences:
            raise ValueError(f"No training sentences found in {args.train}")

        print(f"\n--- Training with {options.training_method.value} ---")
        trainer, examples = build_tagging_trainer(train_sentences, options, JsonCheckpointSink())
        model = trainer.train(examples, dev_sentences, args.model)

        save_weights(args.model, model)
        print(f"\nSuccessfully saved model to {args.model}")
        if dev_sentences is not None:
            print(f"Final dev accuracy: {tagging_accuracy(model, dev_sentences):.2f}")
    except (FileNotFoundError, ValueError, TypeError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
