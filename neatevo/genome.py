"""Genome representation with mutation, crossover, distance and pruning."""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from random import Random
from typing import TYPE_CHECKING, Any

from .genes import (
    MIN_MIDDLE_X,
    NODE_Y_MAX,
    NODE_Y_MIN,
    NODE_Y_VARIATION,
    ConnectionGene,
    NodeGene,
)
from .random_hash_set import RandomHashSet

if TYPE_CHECKING:
    from .innovations import InnovationRegistry

MAX_ATTEMPTS = 10
CROSSOVER_GENE_SELECTION_THRESHOLD = 0.4
# A shift moves a value by at most this many multiples of its strength.
SHIFT_SPAN = 2.0


class MutationPressure(Enum):
    """Multipliers applied to topology and weight mutation rates."""

    COMPACT = ("compact", 0.2, 1.0)
    NORMAL = ("normal", 1.0, 1.0)
    BOOST = ("boost", 1.0, 2.0)
    ESCAPE = ("escape", 2.0, 2.0)
    PANIC = ("panic", 5.0, 2.0)

    def __init__(self, label: str, topology: float, weights: float) -> None:
        self.label = label
        self.topology = topology
        self.weights = weights

    def __str__(self) -> str:
        return self.label


def _retry_draw(draw: Callable[[], float], accept: Callable[[float], bool]) -> float:
    for _ in range(MAX_ATTEMPTS):
        value = draw()
        if accept(value):
            return value
    return 0.0


@dataclass(slots=True, eq=False)
class Genome:
    """Nodes and connections of one candidate network.

    Both collections stay sorted by innovation number. Connections refer to
    nodes by innovation number, and every referenced node is present in
    ``nodes``.
    """

    registry: InnovationRegistry
    nodes: RandomHashSet[NodeGene] = field(default_factory=RandomHashSet)
    connections: RandomHashSet[ConnectionGene] = field(default_factory=RandomHashSet)

    @property
    def rng(self) -> Random:
        return self.registry.rng

    @property
    def complexity(self) -> int:
        return len(self.nodes) + len(self.connections)

    def node(self, node_id: int) -> NodeGene | None:
        return self.nodes.by_innovation(node_id)

    def has_connection(self, from_node: NodeGene, to_node: NodeGene) -> bool:
        innovation = self.registry.peek_connection(from_node, to_node)
        return innovation is not None and innovation in self.connections

    def copy(self) -> Genome:
        return Genome(
            self.registry,
            nodes=RandomHashSet(node.copy() for node in self.nodes),
            connections=RandomHashSet(con.copy() for con in self.connections),
        )

    # -- structural mutations -------------------------------------------------

    def mutate_link(self) -> ConnectionGene | None:
        """Connect two random nodes of different depth.

        Returns the new connection, or ``None`` when no valid pair was found
        within the retry budget or the pair is already connected.
        """
        params = self.registry.params
        for _ in range(MAX_ATTEMPTS):
            a = self.nodes.random_element(self.rng)
            b = self.nodes.random_element(self.rng)
            if a is None or b is None:
                return None
            if a.x == b.x:
                continue
            if a.x > b.x:
                a, b = b, a
            if self.has_connection(a, b):
                return None
            connection = self.registry.get_connection(a, b)
            connection.weight = self.rng.uniform(
                -params.weight_random_strength,
                params.weight_random_strength,
            )
            self.connections.add_sorted(connection)
            return connection
        return None

    def mutate_node(self) -> NodeGene | None:
        """Split a random connection with a new hidden node.

        Every genome splitting the same edge receives the same node identity.
        Returns the genome's split node, or ``None`` if nothing changed.
        """
        connection = self.connections.random_element(self.rng)
        if connection is None:
            return None
        from_node = self.node(connection.from_id)
        to_node = self.node(connection.to_id)
        if from_node is None or to_node is None:
            return None

        x = (from_node.x + to_node.x) / 2
        # Rounding can land the midpoint on an endpoint once splits nest deeply.
        if x < MIN_MIDDLE_X or not from_node.x < x < to_node.x:
            return None
        y = (from_node.y + to_node.y) / 2 + (self.rng.random() - 0.5) * NODE_Y_VARIATION
        y = min(max(y, NODE_Y_MIN), NODE_Y_MAX)

        canonical = self.registry.split_node(from_node, to_node, x=x, y=y)
        middle = self.node(canonical.innovation_number)
        is_new_node = middle is None
        if middle is None:
            middle = canonical.copy(bias=0.0)

        incoming = self.registry.get_connection(from_node, middle)
        incoming.weight = 1.0
        outgoing = self.registry.get_connection(middle, to_node)
        outgoing.weight = connection.weight
        outgoing.enabled = connection.enabled

        added = False
        if incoming not in self.connections:
            added = True
        if outgoing not in self.connections:
            added = True
        if not added:
            return None

        if is_new_node:
            self.nodes.add_sorted(middle)
        self.connections.add_sorted(incoming)
        self.connections.add_sorted(outgoing)

        connection.enabled = False
        connection.replace_index = canonical.innovation_number
        self.remove_connection(connection, replace=True)
        return middle

    def remove_connection(
        self,
        connection: ConnectionGene,
        replace: bool = False,
        down: bool = True,
        up: bool = True,
    ) -> bool:
        """Drop ``connection`` and, unless replacing it, its orphaned endpoints.

        A direct input-to-output connection is kept when main connections are
        permanent.
        """
        stored = self.connections.by_innovation(connection.innovation_number)
        if stored is None:
            return False
        if self.registry.params.permanent_main_connections and self._is_main(stored):
            return False
        self.connections.remove(stored)
        if replace:
            return True
        if down:
            self._remove_if_orphan(stored.from_id)
        if up:
            self._remove_if_orphan(stored.to_id)
        return True

    def _is_main(self, connection: ConnectionGene) -> bool:
        from_node = self.node(connection.from_id)
        to_node = self.node(connection.to_id)
        return (
            from_node is not None
            and to_node is not None
            and from_node.is_input
            and to_node.is_output
        )

    def _remove_if_orphan(self, node_id: int) -> None:
        node = self.node(node_id)
        if node is None or node.is_input or node.is_output:
            return
        for connection in self.connections:
            if connection.from_id == node_id or connection.to_id == node_id:
                return
        self.nodes.remove(node)

    # -- weight mutations -----------------------------------------------------

    def _random_bias_node(self) -> NodeGene | None:
        candidates = [node for node in self.nodes if not node.is_input]
        if not candidates:
            return None
        return self.rng.choice(candidates)

    def mutate_weight_shift(
        self,
        pressure: MutationPressure = MutationPressure.NORMAL,
    ) -> ConnectionGene | None:
        """Nudge one connection weight and one non-input bias.

        Deltas are uniform within ``SHIFT_SPAN`` times the configured strength,
        scaled by the pressure's weight multiplier.
        """
        params = self.registry.params
        rng = self.rng
        weight_scale = SHIFT_SPAN * params.weight_shift_strength * pressure.weights
        bias_scale = SHIFT_SPAN * params.bias_shift_strength * pressure.weights

        connection = self.connections.random_element(rng)
        if connection is not None:
            connection.weight += _retry_draw(
                lambda: rng.uniform(-1.0, 1.0) * weight_scale,
                lambda delta: delta != 0.0,
            )
        node = self._random_bias_node()
        if node is not None:
            node.bias += _retry_draw(
                lambda: rng.uniform(-1.0, 1.0) * bias_scale,
                lambda delta: delta != 0.0,
            )
        return connection

    def mutate_weight_random(self) -> ConnectionGene | None:
        """Redraw one connection weight and one non-input bias."""
        params = self.registry.params
        rng = self.rng

        connection = self.connections.random_element(rng)
        if connection is not None:
            current = connection.weight
            connection.weight = _retry_draw(
                lambda: rng.uniform(
                    -params.weight_random_strength, params.weight_random_strength
                ),
                lambda value: value != current,
            )
        node = self._random_bias_node()
        if node is not None:
            current_bias = node.bias
            node.bias = _retry_draw(
                lambda: rng.uniform(
                    -params.bias_random_strength, params.bias_random_strength
                ),
                lambda value: value != current_bias,
            )
        return connection

    def mutate_link_toggle(self, self_opt: bool = False) -> ConnectionGene | None:
        """Flip a random connection; never re-enables one while self-optimising."""
        connection = self.connections.random_element(self.rng)
        if connection is None:
            return None
        if self_opt and not connection.enabled:
            return None
        connection.enabled = not connection.enabled
        return connection

    # -- pruning --------------------------------------------------------------

    def prune_dead_graph(self) -> int:
        """Remove nodes and connections off every input-to-output path.

        Reachability uses enabled connections only. Inputs and outputs are
        always kept. Returns the number of genes removed.
        """
        forward: dict[int, list[int]] = defaultdict(list)
        backward: dict[int, list[int]] = defaultdict(list)
        for connection in self.connections:
            if connection.enabled:
                forward[connection.from_id].append(connection.to_id)
                backward[connection.to_id].append(connection.from_id)

        inputs = [node.innovation_number for node in self.nodes if node.is_input]
        outputs = [node.innovation_number for node in self.nodes if node.is_output]
        reachable = _reach(inputs, forward) & _reach(outputs, backward)
        keep = reachable | set(inputs) | set(outputs)

        removed = 0
        for node in [node for node in self.nodes if node.innovation_number not in keep]:
            self.nodes.remove(node)
            removed += 1
        for connection in [
            con
            for con in self.connections
            if con.from_id not in keep or con.to_id not in keep
        ]:
            self.connections.remove(connection)
            removed += 1
        return removed

    # -- orchestration --------------------------------------------------------

    def mutate(
        self,
        self_opt: bool = False,
        pressure: MutationPressure = MutationPressure.NORMAL,
    ) -> int:
        """Apply each operator according to its configured probability.

        Probabilities above 1 fire the operator several times unless the
        genome or the population is optimising, in which case they are capped
        at 1 and dead structure is pruned afterwards. Structural growth is
        off while self-optimising. Returns the number of operators that
        changed the genome.
        """
        params = self.registry.params
        optimize = self_opt or self.registry.optimization
        rng = self.rng

        def times(probability: float) -> int:
            probability *= params.mutation_rate
            if optimize:
                probability = min(probability, 1.0)
            count = int(probability)
            if rng.random() < probability - count:
                count += 1
            return count

        changed = 0
        if not self_opt:
            link_probability = params.probability_mutate_link * pressure.topology
            if not optimize and len(self.connections) < params.ct:
                link_probability = max(link_probability, 1.0)
            for _ in range(times(link_probability)):
                if self.mutate_link() is not None:
                    changed += 1
            for _ in range(times(params.probability_mutate_node * pressure.topology)):
                if self.mutate_node() is not None:
                    changed += 1

        for _ in range(times(params.probability_mutate_weight_shift)):
            if self.mutate_weight_shift(pressure) is not None:
                changed += 1
        for _ in range(times(params.probability_mutate_weight_random)):
            if self.mutate_weight_random() is not None:
                changed += 1
        for _ in range(times(params.probability_mutate_toggle_link)):
            if self.mutate_link_toggle(self_opt) is not None:
                changed += 1

        if optimize:
            self.prune_dead_graph()
        return changed

    # -- comparison and breeding ----------------------------------------------

    def distance(self, other: Genome) -> float:
        """Compatibility distance over connection weights and node biases."""
        params = self.registry.params
        excess = 0
        disjoint = 0
        difference = 0.0
        matches = 0

        for left, right, value in (
            (list(self.connections), list(other.connections), _weight),
            (list(self.nodes), list(other.nodes), _bias),
        ):
            index_left = 0
            index_right = 0
            while index_left < len(left) and index_right < len(right):
                gene_left = left[index_left]
                gene_right = right[index_right]
                if gene_left.innovation_number == gene_right.innovation_number:
                    matches += 1
                    difference += abs(value(gene_left) - value(gene_right))
                    index_left += 1
                    index_right += 1
                elif gene_left.innovation_number < gene_right.innovation_number:
                    disjoint += 1
                    index_left += 1
                else:
                    disjoint += 1
                    index_right += 1
            excess += len(left) - index_left
            excess += len(right) - index_right

        n = max(len(self.connections), len(other.connections))
        n = 1 if n < params.ct or n == 0 else n
        mean_difference = difference / matches if matches else 0.0
        return (
            params.c1 * excess / n
            + params.c2 * disjoint / n
            + params.c3 * mean_difference
        )

    @classmethod
    def cross_over(cls, fitter: Genome, other: Genome) -> Genome:
        """Breed a child genome.

        ``fitter`` must be the parent with the higher score: its disjoint and
        excess connections are inherited, while those unique to ``other``
        are dropped. Matching connections come from either parent.
        """
        if fitter.registry is not other.registry:
            msg = "Cannot cross genomes from different innovation registries."
            raise ValueError(msg)
        registry = fitter.registry
        rng = registry.rng
        optimize = registry.optimization

        left = list(fitter.connections)
        right = list(other.connections)
        inherited: list[ConnectionGene] = []
        index_left = 0
        index_right = 0
        while index_left < len(left):
            gene_left = left[index_left]
            gene_right = right[index_right] if index_right < len(right) else None
            if (
                gene_right is not None
                and gene_left.innovation_number == gene_right.innovation_number
            ):
                index_left += 1
                index_right += 1
                if optimize and not (gene_left.enabled and gene_right.enabled):
                    continue
                picked = (
                    gene_left
                    if rng.random() > CROSSOVER_GENE_SELECTION_THRESHOLD
                    else gene_right
                )
                inherited.append(picked.copy())
            elif (
                gene_right is not None
                and gene_left.innovation_number > gene_right.innovation_number
            ):
                index_right += 1
            else:
                index_left += 1
                if optimize and not gene_left.enabled:
                    continue
                inherited.append(gene_left.copy())

        child = cls(registry)
        for node in fitter.nodes:
            if node.is_input or node.is_output:
                child.nodes.add_sorted(node.copy())
        for connection in inherited:
            for node_id in (connection.from_id, connection.to_id):
                if node_id in child.nodes:
                    continue
                node = fitter.node(node_id) or other.node(node_id)
                if node is None:
                    msg = f"Parent genomes do not define node {node_id}."
                    raise ValueError(msg)
                child.nodes.add_sorted(node.copy())
            child.connections.add_sorted(connection)
        return child

    # -- persistence ----------------------------------------------------------

    def save(self) -> dict[str, Any]:
        """Return the genome as plain data (innovation numbers as node keys)."""
        return {
            "nodes": [
                {
                    "innovationNumber": node.innovation_number,
                    "x": node.x,
                    "y": node.y,
                    "bias": node.bias,
                }
                for node in self.nodes
            ],
            "connections": [
                {
                    "replaceIndex": con.replace_index,
                    "enabled": con.enabled,
                    "weight": con.weight,
                    "from": con.from_id,
                    "to": con.to_id,
                }
                for con in self.connections
            ],
        }


def _weight(gene: Any) -> float:
    return gene.weight


def _bias(gene: Any) -> float:
    return gene.bias


def _reach(starts: Iterable[int], edges: dict[int, list[int]]) -> set[int]:
    seen = set(starts)
    queue = deque(seen)
    while queue:
        current = queue.popleft()
        for target in edges.get(current, ()):
            if target not in seen:
                seen.add(target)
                queue.append(target)
    return seen


__all__ = [
    "CROSSOVER_GENE_SELECTION_THRESHOLD",
    "Genome",
    "MAX_ATTEMPTS",
    "MutationPressure",
    "SHIFT_SPAN",
]
