"""Population member: a genome plus its fitness bookkeeping."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from .genome import Genome, MutationPressure
from .network import Activation, FeedForwardNetwork

if TYPE_CHECKING:
    from .species import Species


class Client:
    """Couples one genome to its score and a lazily built network."""

    def __init__(
        self,
        genome: Genome,
        output_activation: Activation | str = Activation.SIGMOID,
        hidden_activation: Activation | str = Activation.TANH,
    ) -> None:
        self._genome = genome
        self._network: FeedForwardNetwork | None = None
        self.output_activation = Activation.coerce(output_activation)
        self.hidden_activation = Activation.coerce(hidden_activation)
        self.score = 0.0
        self.score_raw = 0.0
        self.adjusted_score = 0.0
        self.error = 1.0
        self.best_score = False
        self.species: Species | None = None

    def __repr__(self) -> str:
        return (
            f"Client(score={self.score:.4f}, error={self.error:.4f}, "
            f"complexity={self.complexity}, best={self.best_score})"
        )

    @property
    def genome(self) -> Genome:
        return self._genome

    @genome.setter
    def genome(self, value: Genome) -> None:
        self._genome = value
        self._network = None

    @property
    def complexity(self) -> int:
        return self._genome.complexity

    @property
    def network(self) -> FeedForwardNetwork:
        if self._network is None:
            return self.generate_network()
        return self._network

    def generate_network(self) -> FeedForwardNetwork:
        self._network = FeedForwardNetwork.from_genome(
            self._genome,
            output_activation=self.output_activation,
            hidden_activation=self.hidden_activation,
        )
        return self._network

    def calculate(self, inputs: Sequence[float]) -> list[float]:
        return self.network.activate(inputs)

    def distance(self, other: Client) -> float:
        return self._genome.distance(other.genome)

    def mutate(
        self,
        force: bool = False,
        pressure: MutationPressure = MutationPressure.NORMAL,
    ) -> int:
        """Mutate the genome unless this client holds the best score.

        A client whose error is already below the optimisation threshold
        mutates in self-optimising mode, unless ``force`` is set.
        """
        if self.best_score and not force:
            return 0
        threshold = self._genome.registry.params.opt_err_threshold
        self_opt = self.error < threshold and not force
        changed = self._genome.mutate(self_opt, pressure)
        self._network = None
        return changed


__all__ = ["Client"]
