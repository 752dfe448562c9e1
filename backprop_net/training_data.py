"""
training_data.py
~~~~~~~~~~~~~~~~

Reading and writing training files.

A training file is a stream of whitespace-separated tokens::

    <layer count> <layer size> ... <layer size>
    <example count>
    <input> ... <input> <target> ... <target>
    ...

Each example holds ``topology[0]`` inputs followed by ``topology[-1]``
targets. Line breaks carry no meaning.

Malformed files are reported with the network's own error types:
``InvalidTopology`` for problems in the topology header and
``DimensionMismatch`` for problems in the examples.
"""

import os
import logging
from typing import Iterator, List, NamedTuple, Sequence, Tuple

from backprop_net.network import DimensionMismatch, InvalidTopology, validate_topology

logger = logging.getLogger(__name__)

Example = Tuple[List[float], List[float]]


class TrainingSet(NamedTuple):
    """A topology and the (inputs, targets) examples that fit it."""

    topology: Tuple[int, ...]
    examples: List[Example]


def _read_int(tokens: Iterator[str], what: str, error: type) -> int:
    try:
        token = next(tokens)
    except StopIteration:
        raise error(f"Training data ended before the {what}")
    try:
        return int(token)
    except ValueError:
        raise error(f"Expected an integer {what}, got {token!r}")


def _read_floats(tokens: Iterator[str], count: int, what: str) -> List[float]:
    values = []
    for _ in range(count):
        try:
            token = next(tokens)
        except StopIteration:
            raise DimensionMismatch(
                f"Training data ended inside {what}: expected {count} value(s), "
                f"got {len(values)}"
            )
        try:
            values.append(float(token))
        except ValueError:
            raise DimensionMismatch(f"Expected a number in {what}, got {token!r}")
    return values


def parse_training_data(text: str) -> TrainingSet:
    """
    Parse the contents of a training file.

    Args:
        text: Whole file contents

    Returns:
        TrainingSet with the topology and examples

    Raises:
        InvalidTopology: If the topology header is missing or invalid
        DimensionMismatch: If the examples are truncated, non-numeric or
            followed by extra tokens
    """
    tokens = iter(text.split())

    layer_count = _read_int(tokens, 'layer count', InvalidTopology)
    if layer_count < 2:
        raise InvalidTopology(
            f"Topology needs at least 2 layers, file declares {layer_count}"
        )
    sizes = [
        _read_int(tokens, f'size of layer {i}', InvalidTopology)
        for i in range(layer_count)
    ]
    topology = validate_topology(sizes)

    example_count = _read_int(tokens, 'example count', DimensionMismatch)
    if example_count < 0:
        raise DimensionMismatch(f"Example count must be non-negative, got {example_count}")

    examples = []
    for i in range(example_count):
        inputs = _read_floats(tokens, topology[0], f'inputs of example {i}')
        targets = _read_floats(tokens, topology[-1], f'targets of example {i}')
        examples.append((inputs, targets))

    leftover = next(tokens, None)
    if leftover is not None:
        raise DimensionMismatch(
            f"Unexpected token {leftover!r} after {example_count} example(s)"
        )

    logger.debug(f"Parsed {len(examples)} example(s) for topology {list(topology)}")
    return TrainingSet(topology, examples)


def load_training_file(path: str) -> TrainingSet:
    """
    Load a training file from disk.

    Raises:
        OSError: If the file cannot be read
        InvalidTopology, DimensionMismatch: If its contents are malformed
    """
    with open(path, 'r') as f:
        training_set = parse_training_data(f.read())

    logger.info(
        f"Loaded {len(training_set.examples)} example(s) from '{path}' "
        f"with topology {list(training_set.topology)}"
    )
    return training_set


def _format_number(value: float) -> str:
    return repr(float(value))


def format_training_data(
    topology: Sequence[int],
    examples: Sequence[Tuple[Sequence[float], Sequence[float]]]
) -> str:
    """
    Render a topology and examples in training file format.

    Raises:
        InvalidTopology: If the topology is invalid
        DimensionMismatch: If an example does not fit the topology
    """
    topology = validate_topology(topology)

    lines = [
        ' '.join(str(size) for size in (len(topology),) + topology),
        str(len(examples))
    ]
    for i, (inputs, targets) in enumerate(examples):
        if len(inputs) != topology[0] or len(targets) != topology[-1]:
            raise DimensionMismatch(
                f"Example {i} has {len(inputs)} input(s) and {len(targets)} "
                f"target(s), topology needs {topology[0]} and {topology[-1]}"
            )
        lines.append(' '.join(_format_number(v) for v in list(inputs) + list(targets)))

    return '\n'.join(lines) + '\n'


def write_training_file(
    path: str,
    topology: Sequence[int],
    examples: Sequence[Tuple[Sequence[float], Sequence[float]]]
) -> None:
    """Write a training file, creating its directory if needed."""
    content = format_training_data(topology, examples)

    directory = os.path.dirname(path)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)

    with open(path, 'w') as f:
        f.write(content)

    logger.info(f"Wrote {len(examples)} example(s) to '{path}'")
