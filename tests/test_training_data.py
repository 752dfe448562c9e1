"""
test_training_data.py
~~~~~~~~~~~~~~~~~~~~~

Unit tests for reading and writing training files.
"""

import os

import pytest

from backprop_net.network import DimensionMismatch, InvalidTopology
from backprop_net.training_data import (
    TrainingSet,
    parse_training_data,
    load_training_file,
    format_training_data,
    write_training_file
)

XOR_FILE = """3 2 4 1
4
0 0 0
0 1 1
1 0 1
1 1 0
"""


@pytest.fixture
def training_file(tmp_path):
    """Write the XOR training file to a temporary directory."""
    path = tmp_path / "training.txt"
    path.write_text(XOR_FILE)
    return str(path)


@pytest.mark.unit
class TestParseTrainingData:
    """Test parsing of training file contents."""

    def test_parses_topology_and_examples(self):
        training_set = parse_training_data(XOR_FILE)

        assert isinstance(training_set, TrainingSet)
        assert training_set.topology == (2, 4, 1)
        assert training_set.examples == [
            ([0.0, 0.0], [0.0]),
            ([0.0, 1.0], [1.0]),
            ([1.0, 0.0], [1.0]),
            ([1.0, 1.0], [0.0]),
        ]

    def test_line_breaks_do_not_matter(self):
        text = "2\n1\n1\n2 0.5\n-1.0 -0.25 1e-1"
        training_set = parse_training_data(text)

        assert training_set.topology == (1, 1)
        assert training_set.examples == [([0.5], [-1.0]), ([-0.25], [0.1])]

    def test_zero_examples(self):
        training_set = parse_training_data("2 3 2 0")
        assert training_set.topology == (3, 2)
        assert training_set.examples == []

    def test_inputs_precede_targets(self):
        training_set = parse_training_data("2 2 3 1 1 2 3 4 5")
        assert training_set.examples == [([1.0, 2.0], [3.0, 4.0, 5.0])]

    @pytest.mark.parametrize("text", [
        "",
        "x 1 1 0",
        "1 4 0",
        "0 0",
        "3 2 0 1 0",
        "2 2 abc 0",
        "2 2",
        "2 -1 1 0",
    ])
    def test_bad_topology(self, text):
        with pytest.raises(InvalidTopology):
            parse_training_data(text)

    @pytest.mark.parametrize("text", [
        "2 1 1",
        "2 1 1 many",
        "2 1 1 -1",
        "2 1 1 2 0.5 1.0 0.5",
        "2 1 1 1 0.5 nope",
        "2 1 1 1 0.5 1.0 extra",
    ])
    def test_bad_examples(self, text):
        with pytest.raises(DimensionMismatch):
            parse_training_data(text)


@pytest.mark.unit
class TestTrainingFiles:
    """Test loading and writing files on disk."""

    def test_load_training_file(self, training_file):
        training_set = load_training_file(training_file)
        assert training_set.topology == (2, 4, 1)
        assert len(training_set.examples) == 4

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_training_file(str(tmp_path / "missing.txt"))

    def test_format_training_data(self):
        text = format_training_data([1, 2], [([0.5], [1.0, -1.0])])
        assert text == "2 1 2\n1\n0.5 1.0 -1.0\n"

    def test_format_rejects_mismatched_example(self):
        with pytest.raises(DimensionMismatch):
            format_training_data([2, 1], [([0.5], [1.0])])

    def test_format_rejects_bad_topology(self):
        with pytest.raises(InvalidTopology):
            format_training_data([2], [])

    def test_write_then_load(self, tmp_path):
        """Test that written files load back with identical values."""
        path = str(tmp_path / "nested" / "sign.txt")
        examples = [([0.123456789], [1.0]), ([-0.987654321], [-1.0])]

        write_training_file(path, (1, 4, 1), examples)

        assert os.path.exists(path)
        training_set = load_training_file(path)
        assert training_set.topology == (1, 4, 1)
        assert training_set.examples == examples
