"""Feed-forward network construction and evaluation from NEAT genomes."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .genome import Genome

ActivationFunction = Callable[[float], float]


class DimensionMismatchError(ValueError):
    """Raised when a vector does not match the network's input or output width."""


class Activation(str, Enum):
    """Enumeration of supported activation kinds."""

    NONE = "none"
    LINEAR = "linear"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    RELU = "relu"
    LEAKY_RELU = "leaky_relu"
    SOFTMAX = "softmax"

    @classmethod
    def coerce(cls, value: Activation | str) -> Activation:
        """Coerce a name into an Activation; unknown names map to SIGMOID."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if member.value.replace("_", "") == key:
                return member
        return cls.SIGMOID


def _sigmoid(x: float) -> float:
    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


def _identity(x: float) -> float:
    return x


DEFAULT_ACTIVATIONS: dict[Activation, ActivationFunction] = {
    Activation.NONE: _identity,
    Activation.LINEAR: _identity,
    Activation.SIGMOID: _sigmoid,
    Activation.TANH: math.tanh,
    Activation.RELU: lambda x: x if x > 0.0 else 0.0,
    Activation.LEAKY_RELU: lambda x: x if x > 0.0 else 0.01 * x,
    # Softmax is applied to the whole output vector after the pass.
    Activation.SOFTMAX: _identity,
}


def softmax(values: Sequence[float]) -> list[float]:
    """Numerically stable normalised exponential."""
    if not values:
        return []
    peak = max(values)
    exps = [math.exp(value - peak) for value in values]
    total = sum(exps)
    return [value / total for value in exps]


@dataclass(slots=True)
class FeedForwardNetwork:
    """Executable network built from a genome, evaluated in order of node depth.

    Hidden nodes are sorted by ``x``; mutation never links nodes of equal depth,
    so every source is computed before the nodes it feeds.
    """

    input_ids: tuple[int, ...]
    hidden_ids: tuple[int, ...]
    output_ids: tuple[int, ...]
    incoming: Mapping[int, tuple[tuple[int, float], ...]]
    biases: Mapping[int, float]
    hidden_activation: Activation
    output_activation: Activation

    @classmethod
    def from_genome(
        cls,
        genome: Genome,
        *,
        output_activation: Activation | str = Activation.SIGMOID,
        hidden_activation: Activation | str = Activation.TANH,
    ) -> FeedForwardNetwork:
        """Construct a feed-forward network from a genome."""
        inputs: list[int] = []
        hidden: list[tuple[float, int]] = []
        outputs: list[int] = []
        biases: dict[int, float] = {}
        for node in genome.nodes:
            if node.is_input:
                inputs.append(node.innovation_number)
                continue
            biases[node.innovation_number] = node.bias
            if node.is_output:
                outputs.append(node.innovation_number)
            else:
                hidden.append((node.x, node.innovation_number))
        hidden.sort()

        incoming: dict[int, list[tuple[int, float]]] = defaultdict(list)
        for connection in genome.connections:
            if not connection.enabled:
                continue
            incoming[connection.to_id].append(
                (connection.from_id, connection.weight)
            )

        return cls(
            input_ids=tuple(sorted(inputs)),
            hidden_ids=tuple(node_id for _, node_id in hidden),
            output_ids=tuple(sorted(outputs)),
            incoming={node_id: tuple(edges) for node_id, edges in incoming.items()},
            biases=biases,
            hidden_activation=Activation.coerce(hidden_activation),
            output_activation=Activation.coerce(output_activation),
        )

    def activate(self, inputs: Sequence[float]) -> list[float]:
        """Run a forward pass and return outputs in node-id order."""
        if len(inputs) != len(self.input_ids):
            msg = f"Expected {len(self.input_ids)} inputs but received {len(inputs)}."
            raise DimensionMismatchError(msg)

        values: dict[int, float] = {}
        for node_id, value in zip(self.input_ids, inputs, strict=True):
            values[node_id] = float(value)

        hidden_fn = DEFAULT_ACTIVATIONS[self.hidden_activation]
        for node_id in self.hidden_ids:
            values[node_id] = hidden_fn(self._weighted_sum(node_id, values))

        output_fn = DEFAULT_ACTIVATIONS[self.output_activation]
        outputs = [
            output_fn(self._weighted_sum(node_id, values)) for node_id in self.output_ids
        ]
        if self.output_activation is Activation.SOFTMAX:
            return softmax(outputs)
        return outputs

    def _weighted_sum(self, node_id: int, values: Mapping[int, float]) -> float:
        total = self.biases.get(node_id, 0.0)
        for src_id, weight in self.incoming.get(node_id, ()):
            try:
                src_value = values[src_id]
            except KeyError as error:
                msg = f"Missing value for node {src_id} required by {node_id}."
                raise RuntimeError(msg) from error
            total += src_value * weight
        return total


__all__ = [
    "Activation",
    "ActivationFunction",
    "DEFAULT_ACTIVATIONS",
    "DimensionMismatchError",
    "FeedForwardNetwork",
    "softmax",
]
