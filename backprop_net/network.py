"""
network.py
~~~~~~~~~~

A fully-connected feedforward neural network trained by back-propagation
with momentum.

The network is stored neuron by neuron rather than as weight matrices so
every value taking part in learning can be inspected. Each neuron owns the
connections leading *out* of it, one per active neuron of the next layer.
Every layer ends with a bias neuron whose output is fixed at 1.0.

The transfer function is ``tanh``, so outputs lie in [-1.0, 1.0].
"""

import math
import time
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

#: Number of past calls the recent average error is smoothed over.
RECENT_AVERAGE_SMOOTHING_FACTOR = 100.0

DEFAULT_ETA = 0.15
DEFAULT_ALPHA = 0.5


class BackpropError(ValueError):
    """Base class for network precondition failures."""


class DimensionMismatch(BackpropError):
    """An input or target vector does not fit the network's layer sizes."""


class InvalidTopology(BackpropError):
    """A topology has fewer than two layers or a layer without neurons."""


def transfer(x: float) -> float:
    """tanh; output range [-1.0, 1.0]."""
    return math.tanh(x)


def transfer_derivative(y: float) -> float:
    """
    Derivative of tanh expressed through its output.

    Args:
        y: A value already passed through ``transfer``

    Returns:
        1 - y**2
    """
    return 1.0 - y * y


class Connection:
    """A weight and the delta last applied to it."""

    __slots__ = ('weight', 'delta_weight')

    def __init__(self, weight: float, delta_weight: float = 0.0):
        self.weight = weight
        self.delta_weight = delta_weight

    def __repr__(self) -> str:
        return f"Connection(weight={self.weight!r}, delta_weight={self.delta_weight!r})"


class Neuron:
    """
    A single unit: output value, gradient and outgoing connections.

    ``outgoing[k]`` is the connection to neuron ``k`` of the next layer.
    """

    __slots__ = ('output_value', 'gradient', 'index', 'outgoing')

    def __init__(self, index: int, outgoing: List[Connection]):
        self.output_value = 0.0
        self.gradient = 0.0
        self.index = index
        self.outgoing = outgoing

    def evaluate(self, prev_layer: 'Layer') -> None:
        """
        Set this neuron's output from the previous layer's outputs.

        The previous layer's bias neuron contributes like any other neuron.
        """
        total = 0.0
        for neuron in prev_layer.neurons:
            total += neuron.output_value * neuron.outgoing[self.index].weight
        self.output_value = transfer(total)

    def compute_output_gradient(self, target: float) -> None:
        """Gradient of an output-layer neuron against its target value."""
        delta = target - self.output_value
        self.gradient = delta * transfer_derivative(self.output_value)

    def compute_hidden_gradient(self, next_layer: 'Layer') -> None:
        """Gradient of a hidden neuron from the gradients of the neurons it feeds."""
        # Nothing feeds the next layer's bias neuron
        dow = 0.0
        for neuron in next_layer.active:
            dow += self.outgoing[neuron.index].weight * neuron.gradient
        self.gradient = dow * transfer_derivative(self.output_value)

    def apply_update(self, prev_layer: 'Layer', eta: float, alpha: float) -> None:
        """
        Update the connections leading into this neuron.

        Those connections are owned by the neurons of ``prev_layer``, so this
        mutates the previous layer rather than this neuron.

        Args:
            prev_layer: The layer feeding this neuron
            eta: Learning rate
            alpha: Momentum, the fraction of the last delta carried over
        """
        for neuron in prev_layer.neurons:
            connection = neuron.outgoing[self.index]
            new_delta = (
                eta * neuron.output_value * self.gradient
                + alpha * connection.delta_weight
            )
            connection.delta_weight = new_delta
            connection.weight += new_delta

    def __repr__(self) -> str:
        return (
            f"Neuron(index={self.index}, output_value={self.output_value!r}, "
            f"gradient={self.gradient!r}, outgoing={len(self.outgoing)})"
        )


class Layer:
    """
    An ordered list of neurons ending with a bias neuron.

    ``neurons`` includes the bias neuron, ``active`` excludes it.
    """

    __slots__ = ('neurons',)

    def __init__(self, neurons: List[Neuron]):
        self.neurons = neurons
        self.bias.output_value = 1.0

    @property
    def active(self) -> List[Neuron]:
        return self.neurons[:-1]

    @property
    def bias(self) -> Neuron:
        return self.neurons[-1]

    def __len__(self) -> int:
        return len(self.neurons)

    def __getitem__(self, index: int) -> Neuron:
        return self.neurons[index]

    def __iter__(self):
        return iter(self.neurons)

    def outputs(self) -> List[float]:
        """Outputs of the active neurons, in index order."""
        return [neuron.output_value for neuron in self.active]


def validate_topology(topology: Sequence[int]) -> Tuple[int, ...]:
    """
    Check a topology and return it as a tuple.

    Args:
        topology: Neuron count of each layer, bias excluded

    Returns:
        The topology as a tuple of ints

    Raises:
        InvalidTopology: If there are fewer than two layers or a layer size
            is not a positive integer
    """
    try:
        sizes = tuple(topology)
    except TypeError:
        raise InvalidTopology(f"Topology must be a sequence of layer sizes, got {topology!r}")

    if len(sizes) < 2:
        raise InvalidTopology(
            f"Topology needs at least an input and an output layer, got {list(sizes)}"
        )
    for size in sizes:
        if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 1:
            raise InvalidTopology(
                f"Layer sizes must be positive integers, got {list(sizes)}"
            )
    return tuple(int(size) for size in sizes)


def validate_hyperparameters(eta: float, alpha: float) -> None:
    """
    Raises:
        ValueError: If eta is outside [0, 1] or alpha is negative or not finite
    """
    if not 0.0 <= eta <= 1.0:
        raise ValueError(f"eta must be between 0.0 and 1.0, got {eta}")
    if not math.isfinite(alpha) or alpha < 0.0:
        raise ValueError(f"alpha must be a finite non-negative number, got {alpha}")


class Network:
    """
    Feedforward network of tanh neurons trained with momentum.

    Typical use::

        >>> net = Network([2, 2, 1], seed=1)
        >>> net.forward([1.0, 0.0])
        >>> net.backward([1.0])
        >>> net.get_results()

    ``backward`` trains against whatever outputs the last ``forward`` left
    behind. Calling it without a fresh ``forward`` for the same inputs is
    allowed but back-propagates against stale outputs; pairing the two
    calls is the caller's responsibility.
    """

    def __init__(
        self,
        topology: Sequence[int],
        eta: float = DEFAULT_ETA,
        alpha: float = DEFAULT_ALPHA,
        rng: Optional[Any] = None,
        seed: Optional[int] = None
    ):
        """
        Build the layers and give every connection a random weight.

        Args:
            topology: Neuron count of each layer, bias excluded
            eta: Learning rate in [0, 1]
            alpha: Momentum coefficient, >= 0
            rng: Source of weights; anything with a ``random()`` method
                returning floats in [0, 1). Defaults to a numpy Generator.
            seed: Seed for the default numpy Generator when ``rng`` is not
                given

        Raises:
            InvalidTopology: If the topology is unusable
            ValueError: If a hyperparameter is out of range
        """
        self.topology = validate_topology(topology)
        validate_hyperparameters(eta, alpha)
        self.eta = eta
        self.alpha = alpha

        if rng is None:
            rng = np.random.default_rng(seed)

        self.layers: List[Layer] = []
        for layer_num, size in enumerate(self.topology):
            is_last = layer_num == len(self.topology) - 1
            num_outputs = 0 if is_last else self.topology[layer_num + 1]
            # One extra neuron per layer for the bias
            neurons = [
                Neuron(index, [Connection(float(rng.random())) for _ in range(num_outputs)])
                for index in range(size + 1)
            ]
            self.layers.append(Layer(neurons))

        self._current_error = 0.0
        self._recent_average_error = 0.0
        self._backward_calls = 0
        self.smoothing_factor = RECENT_AVERAGE_SMOOTHING_FACTOR

        logger.info(
            f"Created network with topology {list(self.topology)}, "
            f"eta={self.eta}, alpha={self.alpha}"
        )

    @property
    def current_error(self) -> float:
        """RMS error of the most recent ``backward`` call."""
        return self._current_error

    @property
    def recent_average_error(self) -> float:
        """
        Moving average of ``current_error`` across ``backward`` calls.

        Starts at the first call's error and is smoothed over
        ``smoothing_factor`` calls from then on.
        """
        return self._recent_average_error

    @property
    def input_size(self) -> int:
        return self.topology[0]

    @property
    def output_size(self) -> int:
        return self.topology[-1]

    def configure(self, eta: float, alpha: float) -> None:
        """
        Set the learning rate and momentum used by later ``backward`` calls.

        Raises:
            ValueError: If eta is outside [0, 1] or alpha is negative
        """
        validate_hyperparameters(eta, alpha)
        self.eta = eta
        self.alpha = alpha
        logger.debug(f"Configured eta={eta}, alpha={alpha}")

    def forward(self, inputs: Sequence[float]) -> None:
        """
        Propagate ``inputs`` through the network.

        Raises:
            DimensionMismatch: If len(inputs) differs from the input layer
                size. Nothing is modified in that case.
        """
        if len(inputs) != self.input_size:
            raise DimensionMismatch(
                f"Expected {self.input_size} input value(s), got {len(inputs)}"
            )

        values = [float(value) for value in inputs]
        for neuron, value in zip(self.layers[0].active, values):
            neuron.output_value = value

        for layer_num in range(1, len(self.layers)):
            prev_layer = self.layers[layer_num - 1]
            for neuron in self.layers[layer_num].active:
                neuron.evaluate(prev_layer)

    def backward(
        self,
        targets: Sequence[float],
        eta: Optional[float] = None,
        alpha: Optional[float] = None
    ) -> None:
        """
        Back-propagate the error against ``targets`` and update the weights.

        Args:
            targets: Expected outputs, one per output neuron
            eta: Learning rate for this call only
            alpha: Momentum for this call only

        Raises:
            DimensionMismatch: If len(targets) differs from the output layer
                size. Nothing is modified in that case.
            ValueError: If an override is out of range
        """
        if len(targets) != self.output_size:
            raise DimensionMismatch(
                f"Expected {self.output_size} target value(s), got {len(targets)}"
            )
        eta = self.eta if eta is None else eta
        alpha = self.alpha if alpha is None else alpha
        validate_hyperparameters(eta, alpha)

        output_layer = self.layers[-1]

        # RMS error over the output neurons
        error = 0.0
        for neuron, target in zip(output_layer.active, targets):
            delta = target - neuron.output_value
            error += delta * delta
        error /= len(output_layer.active)
        self._current_error = math.sqrt(error)

        if self._backward_calls == 0:
            # The first call starts the average at the error itself
            self._recent_average_error = self._current_error
        else:
            self._recent_average_error = (
                (self._recent_average_error * self.smoothing_factor + self._current_error)
                / (self.smoothing_factor + 1.0)
            )
        self._backward_calls += 1

        for neuron, target in zip(output_layer.active, targets):
            neuron.compute_output_gradient(target)

        for layer_num in range(len(self.layers) - 2, 0, -1):
            next_layer = self.layers[layer_num + 1]
            for neuron in self.layers[layer_num].neurons:
                neuron.compute_hidden_gradient(next_layer)

        for layer_num in range(len(self.layers) - 1, 0, -1):
            prev_layer = self.layers[layer_num - 1]
            for neuron in self.layers[layer_num].active:
                neuron.apply_update(prev_layer, eta, alpha)

        logger.debug(
            f"Back-propagated: error={self._current_error:.6f}, "
            f"recent average={self._recent_average_error:.6f}"
        )

    def get_results(self) -> List[float]:
        """Outputs of the output layer's active neurons."""
        return self.layers[-1].outputs()

    def feedforward(self, inputs: Sequence[float]) -> List[float]:
        """Run ``forward`` and return the results."""
        self.forward(inputs)
        return self.get_results()

    def classify(self, value: float) -> str:
        """
        Classify a single scalar by the sign of the first output.

        Returns:
            'Positive' if the first result is > 0, otherwise 'Negative'

        Raises:
            DimensionMismatch: If the network does not take exactly one input
        """
        results = self.feedforward([value])
        return 'Positive' if results[0] > 0 else 'Negative'

    def train(
        self,
        training_data: Sequence[Tuple[Sequence[float], Sequence[float]]],
        epochs: int = 1,
        eta: Optional[float] = None,
        alpha: Optional[float] = None,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None
    ) -> List[float]:
        """
        Train on every example, in order, for a number of epochs.

        Each example is one ``forward`` followed by one ``backward``.

        Args:
            training_data: List of (inputs, targets) pairs
            epochs: Number of passes over training_data
            eta: Learning rate override for this run
            alpha: Momentum override for this run
            callback: Called after each epoch with a progress dict
            yield_func: Called after each example, to let other tasks run

        Returns:
            The recent average error after each epoch

        Raises:
            ValueError: If epochs is not a positive integer
            DimensionMismatch: If an example does not fit the topology
        """
        if not isinstance(epochs, int) or epochs < 1:
            raise ValueError(f"epochs must be a positive integer, got {epochs}")
        validate_hyperparameters(
            self.eta if eta is None else eta,
            self.alpha if alpha is None else alpha
        )

        history = []
        start_time = time.time()

        for epoch in range(1, epochs + 1):
            for inputs, targets in training_data:
                # Check targets before forward mutates anything
                if len(targets) != self.output_size:
                    raise DimensionMismatch(
                        f"Expected {self.output_size} target value(s), got {len(targets)}"
                    )
                self.forward(inputs)
                self.backward(targets, eta=eta, alpha=alpha)
                if yield_func:
                    yield_func()

            history.append(self._recent_average_error)
            logger.debug(
                f"Epoch {epoch}/{epochs}: recent average error "
                f"{self._recent_average_error:.6f}"
            )

            if callback:
                callback({
                    'epoch': epoch,
                    'total_epochs': epochs,
                    'current_error': self._current_error,
                    'recent_average_error': self._recent_average_error,
                    'elapsed_time': time.time() - start_time
                })

        return history

    def weights(self) -> List[List[List[float]]]:
        """
        Connection weights as ``weights()[layer][neuron][k]``.

        The output layer has no outgoing connections and is left out.
        """
        return [
            [[connection.weight for connection in neuron.outgoing] for neuron in layer]
            for layer in self.layers[:-1]
        ]

    def set_weight(
        self,
        layer: int,
        neuron: int,
        target: int,
        weight: float,
        delta_weight: float = 0.0
    ) -> None:
        """
        Overwrite one connection, addressed by coordinates.

        Args:
            layer: Index of the layer owning the connection
            neuron: Index of the source neuron in that layer (the bias is
                the last index)
            target: Index of the destination neuron in the next layer
            weight: New weight
            delta_weight: New remembered delta

        Raises:
            IndexError: If the coordinates do not name a connection
        """
        if not 0 <= layer < len(self.layers) - 1:
            raise IndexError(f"No outgoing connections from layer {layer}")
        source = self.layers[layer]
        if not 0 <= neuron < len(source):
            raise IndexError(f"Layer {layer} has no neuron {neuron}")
        if not 0 <= target < len(source[neuron].outgoing):
            raise IndexError(f"Layer {layer + 1} has no active neuron {target}")

        connection = source[neuron].outgoing[target]
        connection.weight = weight
        connection.delta_weight = delta_weight

    def __repr__(self) -> str:
        return f"Network(topology={list(self.topology)}, eta={self.eta}, alpha={self.alpha})"
