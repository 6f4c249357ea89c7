"""
Multi-layer perceptron trained by backpropagation.

Layer shapes are fixed at construction from
``input_size -> hidden_layers... -> output_size``; ``load`` refuses a
snapshot with a different architecture.  Training is plain SGD with MSE
loss, one update per sample by default (``batch_size=1``) or one update
per averaged mini-batch.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ring_insights.analytics.linalg import SeedLike, as_matrix, as_vector, make_rng
from ring_insights.constants import NN_ACTIVATIONS, NN_DEFAULT_LEARNING_RATE, NN_LOG_EVERY
from ring_insights.errors import ConfigurationError

log = logging.getLogger("neural_network")


@dataclass
class NetworkConfig:
    input_size: int
    hidden_layers: List[int] = field(default_factory=list)
    output_size: int = 1
    learning_rate: float = NN_DEFAULT_LEARNING_RATE
    activation: str = "sigmoid"

    def __post_init__(self):
        self.hidden_layers = [int(w) for w in self.hidden_layers]
        if self.activation not in NN_ACTIVATIONS:
            raise ConfigurationError(
                f"activation must be one of {NN_ACTIVATIONS}, got {self.activation!r}"
            )
        if self.input_size < 1 or self.output_size < 1 or any(w < 1 for w in self.hidden_layers):
            raise ConfigurationError("Layer widths must all be >= 1")
        if self.learning_rate <= 0:
            raise ConfigurationError("learning_rate must be positive")

    def layer_sizes(self) -> List[int]:
        return [self.input_size, *self.hidden_layers, self.output_size]


def _activate(z: np.ndarray, kind: str) -> np.ndarray:
    if kind == "sigmoid":
        return 1.0 / (1.0 + np.exp(-np.clip(z, -500, 500)))
    if kind == "tanh":
        return np.tanh(z)
    return np.maximum(z, 0.0)


def _derivative(z: np.ndarray, kind: str) -> np.ndarray:
    if kind == "sigmoid":
        s = _activate(z, "sigmoid")
        return s * (1.0 - s)
    if kind == "tanh":
        return 1.0 - np.tanh(z) ** 2
    return (z > 0).astype(np.float64)


class NeuralNetwork:
    """Fully connected network with one activation used for every layer.

    Weights and biases start uniform in [-1, 1).  ``weights[i]`` has shape
    ``(sizes[i+1], sizes[i])``.
    """

    def __init__(self, config: Optional[NetworkConfig] = None, seed: SeedLike = None,
                 log_every: int = NN_LOG_EVERY, **kwargs):
        if config is None:
            config = NetworkConfig(**kwargs)
        elif kwargs:
            raise ConfigurationError("Pass either a NetworkConfig or keyword arguments, not both")
        self.config = config
        self.log_every = max(1, int(log_every))
        rng = make_rng(seed)
        sizes = config.layer_sizes()
        self.weights: List[np.ndarray] = [
            rng.uniform(-1.0, 1.0, size=(sizes[i + 1], sizes[i])) for i in range(len(sizes) - 1)
        ]
        self.biases: List[np.ndarray] = [
            rng.uniform(-1.0, 1.0, size=sizes[i + 1]) for i in range(len(sizes) - 1)
        ]

    # ─── Forward / backward ────────────────────────────────

    def _forward(self, x: np.ndarray) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        """Return (pre-activations, activations); activations[0] is the input."""
        pre: List[np.ndarray] = []
        acts: List[np.ndarray] = [x]
        for w, b in zip(self.weights, self.biases):
            z = w @ acts[-1] + b
            pre.append(z)
            acts.append(_activate(z, self.config.activation))
        return pre, acts

    def _gradients(self, x: np.ndarray, y: np.ndarray):
        pre, acts = self._forward(x)
        output = acts[-1]
        loss = float(np.mean((y - output) ** 2))

        kind = self.config.activation
        delta = (output - y) * _derivative(pre[-1], kind)
        grads_w: List[np.ndarray] = [None] * len(self.weights)
        grads_b: List[np.ndarray] = [None] * len(self.weights)
        for i in range(len(self.weights) - 1, -1, -1):
            grads_w[i] = np.outer(delta, acts[i])
            grads_b[i] = delta
            if i > 0:
                delta = (self.weights[i].T @ delta) * _derivative(pre[i - 1], kind)
        return loss, grads_w, grads_b

    def predict(self, inputs) -> np.ndarray:
        x = as_vector(inputs, "inputs")
        if x.size != self.config.input_size:
            raise ConfigurationError(
                f"Expected {self.config.input_size} inputs, got {x.size}"
            )
        return self._forward(x)[1][-1]

    def train(self, inputs, targets, epochs: int = 1000, batch_size: int = 1) -> List[float]:
        """Run ``epochs`` passes over the data in input order.

        Returns the mean per-sample MSE of every epoch, measured on the
        forward pass that precedes each update.
        """
        x = as_matrix(inputs, "inputs")
        y = as_matrix(targets, "targets")
        if x.shape[0] != y.shape[0]:
            raise ConfigurationError(f"{x.shape[0]} inputs but {y.shape[0]} targets")
        if x.shape[1] != self.config.input_size or y.shape[1] != self.config.output_size:
            raise ConfigurationError(
                f"Expected samples of shape ({self.config.input_size}) -> "
                f"({self.config.output_size}), got ({x.shape[1]}) -> ({y.shape[1]})"
            )
        if epochs < 1 or batch_size < 1:
            raise ConfigurationError("epochs and batch_size must be >= 1")
        if x.shape[0] == 0:
            raise ConfigurationError("Cannot train on an empty dataset")

        lr = self.config.learning_rate
        n = x.shape[0]
        losses: List[float] = []
        for epoch in range(epochs):
            total = 0.0
            for start in range(0, n, batch_size):
                stop = min(start + batch_size, n)
                acc_w = [np.zeros_like(w) for w in self.weights]
                acc_b = [np.zeros_like(b) for b in self.biases]
                for i in range(start, stop):
                    loss, gw, gb = self._gradients(x[i], y[i])
                    total += loss
                    for layer in range(len(self.weights)):
                        acc_w[layer] += gw[layer]
                        acc_b[layer] += gb[layer]
                size = stop - start
                for layer in range(len(self.weights)):
                    self.weights[layer] -= lr * acc_w[layer] / size
                    self.biases[layer] -= lr * acc_b[layer] / size
            losses.append(total / n)
            if epoch % self.log_every == 0:
                log.debug("Epoch %d: loss = %.6f", epoch, losses[-1])

        log.info("Trained %d epochs on %d samples, final loss %.6f", epochs, n, losses[-1])
        return losses

    # ─── Snapshots ─────────────────────────────────────────

    def save(self) -> Dict[str, Any]:
        return {
            "config": asdict(self.config),
            "weights": [w.tolist() for w in self.weights],
            "biases": [b.tolist() for b in self.biases],
        }

    def load(self, snapshot: Dict[str, Any]) -> None:
        """Restore parameters from ``save()`` output; the architecture must match."""
        config = NetworkConfig(**snapshot["config"])
        if config.layer_sizes() != self.config.layer_sizes():
            raise ConfigurationError(
                f"Snapshot layers {config.layer_sizes()} do not match "
                f"{self.config.layer_sizes()}"
            )
        weights = [np.array(w, dtype=np.float64) for w in snapshot["weights"]]
        biases = [np.array(b, dtype=np.float64) for b in snapshot["biases"]]
        if len(weights) != len(self.weights) or len(biases) != len(self.biases):
            raise ConfigurationError(
                f"Snapshot has {len(weights)} weight and {len(biases)} bias arrays, "
                f"expected {len(self.weights)} each"
            )
        for cur, new in zip(self.weights + self.biases, weights + biases):
            if cur.shape != new.shape:
                raise ConfigurationError(f"Parameter shape {new.shape} != {cur.shape}")
        self.config = config
        self.weights = weights
        self.biases = biases

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "NeuralNetwork":
        net = cls(NetworkConfig(**snapshot["config"]))
        net.load(snapshot)
        return net

    def to_json(self) -> str:
        return json.dumps(self.save())

    @classmethod
    def from_json(cls, payload: str) -> "NeuralNetwork":
        return cls.from_snapshot(json.loads(payload))
