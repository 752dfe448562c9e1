#!/usr/bin/env python3
"""
Generate training files for the back-propagation network.

Two data sets are available:
- sign: one input in [-1, 1], target 1.0 if it is positive, else -1.0
        (topology 1 4 1; this is what the interactive classifier expects)
- xor:  two random bits, target is their exclusive or
        (topology 2 4 1)

Usage:
    python scripts/make_training_samples.py sign --count 2000
    python scripts/make_training_samples.py xor --output data/xor.txt --seed 7

The file is written to data/<kind>.txt unless --output is given.
"""

import os
import sys
import argparse
from typing import List, Tuple

import numpy as np

from backprop_net.training_data import write_training_file

Example = Tuple[List[float], List[float]]

SIGN_TOPOLOGY = (1, 4, 1)
XOR_TOPOLOGY = (2, 4, 1)


def make_sign_examples(count: int, rng: np.random.Generator) -> List[Example]:
    """
    Uniform samples in [-1, 1] labelled by their sign.

    Parameters:
    -----------
    count : int
        Number of examples
    rng : np.random.Generator
        Random source

    Returns:
    --------
    list
        (inputs, targets) pairs
    """
    examples = []
    for x in rng.uniform(-1.0, 1.0, size=count):
        target = 1.0 if x > 0 else -1.0
        examples.append(([float(x)], [target]))
    return examples


def make_xor_examples(count: int, rng: np.random.Generator) -> List[Example]:
    """
    Random bit pairs labelled with their exclusive or.

    Parameters:
    -----------
    count : int
        Number of examples
    rng : np.random.Generator
        Random source

    Returns:
    --------
    list
        (inputs, targets) pairs
    """
    examples = []
    for a, b in rng.integers(0, 2, size=(count, 2)):
        examples.append(([float(a), float(b)], [float(a ^ b)]))
    return examples


GENERATORS = {
    'sign': (SIGN_TOPOLOGY, make_sign_examples),
    'xor': (XOR_TOPOLOGY, make_xor_examples),
}


def main():
    """Main generation function."""
    parser = argparse.ArgumentParser(description='Generate a training file.')
    parser.add_argument('kind', choices=sorted(GENERATORS), help='Data set to generate')
    parser.add_argument('--count', type=int, default=2000, help='Number of examples')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--output', default=None, help='Output file path')
    args = parser.parse_args()

    if args.count < 0:
        print("❌ Error: --count must be non-negative")
        sys.exit(1)

    script_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(script_dir)
    output = args.output or os.path.join(project_root, 'data', f'{args.kind}.txt')

    topology, generate = GENERATORS[args.kind]
    rng = np.random.default_rng(args.seed)

    print("=" * 60)
    print(f"Training sample generator: {args.kind}")
    print("=" * 60)

    try:
        examples = generate(args.count, rng)
        write_training_file(output, topology, examples)
    except (OSError, ValueError) as e:
        print(f"\n❌ Error writing training file: {e}")
        sys.exit(1)

    print(f"✅ Wrote {len(examples)} example(s)")
    print(f"   - Topology: {' '.join(str(size) for size in topology)}")
    print(f"   - File: {output}")
    print(f"\n📝 Next step:")
    print(f"   backprop-net {output} --epochs 5")


if __name__ == '__main__':
    main()
