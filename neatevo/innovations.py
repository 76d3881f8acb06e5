"""Population-scoped registry of structural innovations."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from random import Random
from typing import Any

from .config import NeatParams
from .genes import INPUT_NODE_X, OUTPUT_NODE_X, ConnectionGene, NodeGene
from .genome import Genome
from .random_hash_set import RandomHashSet


class RegistryError(RuntimeError):
    """Raised when the registry's bookkeeping invariants are violated."""


def connection_key(from_node: NodeGene, to_node: NodeGene) -> str:
    """Return the canonical key for an edge between two nodes."""
    return (
        f"{from_node.innovation_number}-{from_node.x}-"
        f"{to_node.innovation_number}-{to_node.x}"
    )


class InnovationRegistry:
    """Hands out innovation numbers shared by every genome of one population.

    Identical structural mutations discovered independently in different
    genomes resolve to the same node or connection identity. The registry
    also carries the population-wide evolution state that genome operators
    consult: the optimisation flag and the adaptive compatibility threshold.
    """

    def __init__(
        self,
        input_count: int,
        output_count: int,
        params: NeatParams | None = None,
        *,
        rng: Random | None = None,
    ) -> None:
        self.params = NeatParams() if params is None else params
        self.rng = Random() if rng is None else rng
        self.optimization = False
        self.compatibility_threshold = self.params.cp
        self.all_nodes: RandomHashSet[NodeGene] = RandomHashSet()
        self.all_connections: dict[str, ConnectionGene] = {}
        self._lock = threading.RLock()
        self.input_count = 0
        self.output_count = 0
        self.reset(input_count, output_count)

    def reset(self, input_count: int, output_count: int) -> None:
        """Forget every innovation and recreate the input and output nodes."""
        if input_count <= 0:
            msg = "Number of input nodes must be positive."
            raise ValueError(msg)
        if output_count <= 0:
            msg = "Number of output nodes must be positive."
            raise ValueError(msg)
        with self._lock:
            self.clear()
            self.input_count = input_count
            self.output_count = output_count
            for index in range(input_count):
                node = self.get_node()
                node.x = INPUT_NODE_X
                node.y = (index + 1) / (input_count + 1)
            for index in range(output_count):
                node = self.get_node()
                node.x = OUTPUT_NODE_X
                node.y = (index + 1) / (output_count + 1)
            self.optimization = False
            self.compatibility_threshold = self.params.cp

    def clear(self) -> None:
        with self._lock:
            self.all_nodes.clear()
            self.all_connections.clear()

    @property
    def node_count(self) -> int:
        return len(self.all_nodes)

    def get_node(self, node_id: int | None = None) -> NodeGene:
        """Return the canonical node ``node_id`` or allocate the next one."""
        with self._lock:
            if node_id is not None and 1 <= node_id <= len(self.all_nodes):
                node = self.all_nodes.get(node_id - 1)
                if node is not None:
                    return node
            node = NodeGene(innovation_number=len(self.all_nodes) + 1)
            self.all_nodes.add(node)
            return node

    def get_connection(self, from_node: NodeGene, to_node: NodeGene) -> ConnectionGene:
        """Return a fresh connection carrying the canonical innovation number."""
        key = connection_key(from_node, to_node)
        with self._lock:
            canonical = self.all_connections.get(key)
            if canonical is None:
                canonical = ConnectionGene(
                    innovation_number=len(self.all_connections) + 1,
                    from_id=from_node.innovation_number,
                    to_id=to_node.innovation_number,
                )
                self.all_connections[key] = canonical
        return ConnectionGene(
            innovation_number=canonical.innovation_number,
            from_id=from_node.innovation_number,
            to_id=to_node.innovation_number,
        )

    def copy_connection(self, connection: ConnectionGene) -> ConnectionGene:
        """Return an independent copy of ``connection`` with every field kept."""
        return connection.copy()

    def peek_connection(self, from_node: NodeGene, to_node: NodeGene) -> int | None:
        """Return the innovation number for an edge without registering it."""
        canonical = self.all_connections.get(connection_key(from_node, to_node))
        return None if canonical is None else canonical.innovation_number

    def get_replace_index(self, from_node: NodeGene, to_node: NodeGene) -> int:
        canonical = self.all_connections.get(connection_key(from_node, to_node))
        return 0 if canonical is None else canonical.replace_index

    def set_replace_index(
        self,
        from_node: NodeGene,
        to_node: NodeGene,
        index: int,
    ) -> None:
        key = connection_key(from_node, to_node)
        with self._lock:
            canonical = self.all_connections.get(key)
            if canonical is None:
                msg = f"Cannot set replace index on unregistered connection {key}."
                raise RegistryError(msg)
            canonical.replace_index = index

    def split_node(
        self,
        from_node: NodeGene,
        to_node: NodeGene,
        *,
        x: float,
        y: float,
    ) -> NodeGene:
        """Return the canonical node that splits the edge ``from -> to``.

        The first split allocates a node at ``(x, y)`` and records it as the
        edge's replace index; later splits of the same edge reuse it.
        """
        with self._lock:
            replace_index = self.get_replace_index(from_node, to_node)
            if replace_index:
                return self.get_node(replace_index)
            node = self.get_node()
            node.x = x
            node.y = y
            self.set_replace_index(from_node, to_node, node.innovation_number)
            return node

    def empty_genome(self) -> Genome:
        """Return a genome holding only the input and output nodes."""
        genome = Genome(self)
        for node_id in range(1, self.input_count + self.output_count + 1):
            genome.nodes.add(self.get_node(node_id).copy(bias=0.0))
        return genome

    def ensure_node(self, node_id: int, *, x: float, y: float) -> NodeGene:
        """Return canonical node ``node_id``, allocating up to it if needed."""
        if node_id < 1:
            msg = f"Node innovation numbers start at 1, got {node_id}."
            raise ValueError(msg)
        with self._lock:
            while len(self.all_nodes) < node_id:
                node = self.get_node()
                node.x = x
                node.y = y
            return self.get_node(node_id)

    def load_genome(self, data: Mapping[str, Any]) -> Genome:
        """Rebuild a genome from its saved mapping.

        Unknown nodes are registered; a connection whose endpoint is missing
        from the saved node list is rejected.
        """
        genome = Genome(self)
        try:
            node_records = sorted(
                data["nodes"], key=lambda item: int(item["innovationNumber"])
            )
            for record in node_records:
                genome.nodes.add_sorted(self._load_node(record))
            for record in data["connections"]:
                genome.connections.add_sorted(self._load_connection(genome, record))
        except (KeyError, TypeError) as error:
            msg = f"Malformed genome data: {error!r}"
            raise ValueError(msg) from error
        return genome

    def _load_node(self, record: Mapping[str, Any]) -> NodeGene:
        node_id = int(record["innovationNumber"])
        x = float(record["x"])
        y = float(record["y"])
        self.ensure_node(node_id, x=x, y=y)
        return NodeGene(
            innovation_number=node_id,
            x=x,
            y=y,
            bias=float(record.get("bias", 0.0)),
        )

    def _load_connection(
        self,
        genome: Genome,
        record: Mapping[str, Any],
    ) -> ConnectionGene:
        from_node = genome.nodes.by_innovation(int(record["from"]))
        to_node = genome.nodes.by_innovation(int(record["to"]))
        if from_node is None or to_node is None:
            msg = (
                f"Connection {record['from']}->{record['to']} references "
                "a node absent from the genome."
            )
            raise ValueError(msg)
        if from_node.x >= to_node.x:
            msg = (
                f"Connection {record['from']}->{record['to']} does not point "
                "towards the outputs."
            )
            raise ValueError(msg)
        connection = self.get_connection(from_node, to_node)
        connection.weight = float(record.get("weight", 0.0))
        connection.enabled = bool(record.get("enabled", True))
        replace_index = int(record.get("replaceIndex", 0))
        if 0 < replace_index <= self.node_count:
            connection.replace_index = replace_index
            if not self.get_replace_index(from_node, to_node):
                self.set_replace_index(from_node, to_node, replace_index)
        return connection


__all__ = ["InnovationRegistry", "RegistryError", "connection_key"]
