"""
backprop_net package
~~~~~~~~~~~~~~~~~~~~

Feedforward neural network trained by back-propagation with momentum.
Contains the core network implementation, training file utilities,
an interactive console classifier, and an API server.
"""

from backprop_net.network import (
    Connection,
    Neuron,
    Layer,
    Network,
    BackpropError,
    DimensionMismatch,
    InvalidTopology,
)

__version__ = "1.0.0"
