"""
console.py
~~~~~~~~~~

Command-line entry point: train a network from a training file, then
classify numbers typed at the prompt as Positive or Negative.

Usage:
    backprop-net data/training.txt --epochs 5

The interactive loop feeds each number to the network as a one-element
input and reports the sign of the first output.
"""

import sys
import logging
import argparse
from typing import Callable, List, Optional, TextIO

from backprop_net.network import Network, BackpropError, DEFAULT_ETA, DEFAULT_ALPHA
from backprop_net.training_data import load_training_file

logger = logging.getLogger(__name__)

PROMPT = 'input number: '
QUIT_WORDS = {'quit', 'exit'}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='backprop-net',
        description='Train a back-propagation network and classify numbers by sign.'
    )
    parser.add_argument('training_file', help='Path to the training file')
    parser.add_argument('--epochs', type=int, default=1,
                        help='Passes over the training file (default: 1)')
    parser.add_argument('--eta', type=float, default=DEFAULT_ETA,
                        help=f'Learning rate in [0, 1] (default: {DEFAULT_ETA})')
    parser.add_argument('--alpha', type=float, default=DEFAULT_ALPHA,
                        help=f'Momentum, >= 0 (default: {DEFAULT_ALPHA})')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for the initial weights')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log every epoch')
    return parser


def show_prompt(text: str) -> None:
    """Print a prompt and leave the cursor on the same line."""
    print(text, end='', flush=True)


def classify_loop(
    net: Network,
    stdin: TextIO = sys.stdin,
    write: Callable[[str], None] = print,
    prompt: Callable[[str], None] = show_prompt
) -> int:
    """
    Read numbers until EOF or a quit word and print their classification.

    Args:
        net: A trained network taking one input
        stdin: Stream to read numbers from
        write: Output function for results and messages
        prompt: Output function for the prompt

    Returns:
        Number of values classified
    """
    classified = 0
    while True:
        prompt(PROMPT)
        line = stdin.readline()
        if not line:
            break
        text = line.strip()
        if not text:
            continue
        if text.lower() in QUIT_WORDS:
            break

        try:
            value = float(text)
        except ValueError:
            write(f"Not a number: {text!r}")
            continue

        write(net.classify(value))
        write('')
        classified += 1

    return classified


def main(argv: Optional[List[str]] = None, stdin: TextIO = sys.stdin) -> int:
    """Console script entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        training_set = load_training_file(args.training_file)
    except OSError as e:
        logger.error(f"Could not read training file '{args.training_file}': {e}")
        return 1
    except BackpropError as e:
        logger.error(f"Malformed training file '{args.training_file}': {e}")
        return 1

    if training_set.topology[0] != 1:
        logger.error(
            f"Interactive classification needs a single input neuron, "
            f"topology is {list(training_set.topology)}"
        )
        return 1

    try:
        net = Network(training_set.topology, eta=args.eta, alpha=args.alpha, seed=args.seed)
        net.train(training_set.examples, epochs=args.epochs)
    except ValueError as e:
        logger.error(f"Training failed: {e}")
        return 1

    logger.info(
        f"Training finished: {len(training_set.examples)} example(s) x "
        f"{args.epochs} epoch(s), recent average error {net.recent_average_error:.6f}"
    )

    classify_loop(net, stdin=stdin)
    return 0


if __name__ == '__main__':
    sys.exit(main())
