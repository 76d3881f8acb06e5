"""Gene primitives (nodes and connections) for NEAT genomes."""

from __future__ import annotations

import math
from dataclasses import dataclass

MAX_NODES = 2**20

INPUT_NODE_X = 0.01
OUTPUT_NODE_X = 0.99
MIN_MIDDLE_X = 0.1
NODE_Y_MIN = 0.1
NODE_Y_MAX = 0.9
NODE_Y_VARIATION = 0.6


def _finite(value: float, *, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as error:
        msg = f"{label} must be convertible to float, got {value!r}"
        raise ValueError(msg) from error
    if not math.isfinite(number):
        msg = f"{label} must be a finite number."
        raise ValueError(msg)
    return number


@dataclass(slots=True, eq=False)
class Gene:
    """Base for every structural gene; identified by its innovation number."""

    innovation_number: int

    def __post_init__(self) -> None:
        if self.innovation_number < 0:
            msg = "innovation_number must be non-negative."
            raise ValueError(msg)


@dataclass(slots=True, eq=False)
class NodeGene(Gene):
    """Node positioned on the unit square; ``x`` encodes layer depth."""

    x: float = 0.0
    y: float = 0.0
    bias: float = 0.0

    def __post_init__(self) -> None:
        Gene.__post_init__(self)
        for label in ("x", "y"):
            value = _finite(getattr(self, label), label=label)
            if not 0.0 <= value <= 1.0:
                msg = f"{label} must be in [0, 1], got {value}"
                raise ValueError(msg)
            setattr(self, label, value)
        self.bias = _finite(self.bias, label="bias")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeGene):
            return NotImplemented
        return self.innovation_number == other.innovation_number

    def __hash__(self) -> int:
        return hash(self.innovation_number)

    @property
    def is_input(self) -> bool:
        return self.x <= INPUT_NODE_X

    @property
    def is_output(self) -> bool:
        return self.x >= OUTPUT_NODE_X

    def copy(self, *, bias: float | None = None) -> NodeGene:
        """Return a detached copy, optionally overriding the bias."""
        return NodeGene(
            innovation_number=self.innovation_number,
            x=self.x,
            y=self.y,
            bias=self.bias if bias is None else bias,
        )


@dataclass(slots=True, eq=False)
class ConnectionGene(Gene):
    """Directed edge between two node innovation numbers.

    Endpoints are stored as integer keys into the owning genome's node set,
    never as node objects. ``replace_index`` names the node that splits this
    edge (0 while it has never been split).
    """

    from_id: int = 0
    to_id: int = 0
    weight: float = 0.0
    enabled: bool = True
    replace_index: int = 0

    def __post_init__(self) -> None:
        Gene.__post_init__(self)
        for label, value in (
            ("from_id", self.from_id),
            ("to_id", self.to_id),
            ("replace_index", self.replace_index),
        ):
            if value < 0:
                msg = f"{label} must be non-negative."
                raise ValueError(msg)
        self.weight = _finite(self.weight, label="weight")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectionGene):
            return NotImplemented
        return self.from_id == other.from_id and self.to_id == other.to_id

    def __hash__(self) -> int:
        return self.from_id * MAX_NODES + self.to_id

    def copy(
        self,
        *,
        weight: float | None = None,
        enabled: bool | None = None,
    ) -> ConnectionGene:
        """Return a copy with optional field overrides."""
        return ConnectionGene(
            innovation_number=self.innovation_number,
            from_id=self.from_id,
            to_id=self.to_id,
            weight=self.weight if weight is None else weight,
            enabled=self.enabled if enabled is None else enabled,
            replace_index=self.replace_index,
        )


__all__ = [
    "ConnectionGene",
    "Gene",
    "INPUT_NODE_X",
    "MAX_NODES",
    "MIN_MIDDLE_X",
    "NODE_Y_MAX",
    "NODE_Y_MIN",
    "NODE_Y_VARIATION",
    "NodeGene",
    "OUTPUT_NODE_X",
]
