"""Species clustering, selection and breeding."""

from __future__ import annotations

import math
from random import Random

from .client import Client
from .genome import Genome


class Species:
    """Group of clients whose genomes lie close to a representative."""

    def __init__(self, representative: Client) -> None:
        self.representative = representative
        self.clients: list[Client] = [representative]
        self.score = 0.0
        representative.species = self

    def __len__(self) -> int:
        return len(self.clients)

    def __repr__(self) -> str:
        return f"Species(size={len(self.clients)}, score={self.score:.4f})"

    def put(self, client: Client, force: bool = False) -> bool:
        """Add ``client`` if forced or compatible with the representative."""
        threshold = self.representative.genome.registry.compatibility_threshold
        if force or client.distance(self.representative) < threshold:
            client.species = self
            self.clients.append(client)
            return True
        return False

    def go_extinct(self) -> None:
        for client in self.clients:
            client.species = None
        self.clients.clear()

    def evaluate_score(self) -> float:
        if not self.clients:
            self.score = 0.0
        else:
            self.score = sum(client.score for client in self.clients) / len(self.clients)
        return self.score

    def reset(self, rng: Random) -> None:
        """Pick a new representative and drop every other member."""
        representative = rng.choice(self.clients) if self.clients else self.representative
        self.go_extinct()
        self.representative = representative
        self.clients.append(representative)
        representative.species = self
        self.score = 0.0

    def kill(self, survivor_fraction: float) -> None:
        """Keep the top ``ceil(fraction * size)`` members by raw score.

        Members flagged ``best_score`` always survive.
        """
        self.clients.sort(key=lambda client: client.score_raw, reverse=True)
        keep = math.ceil(survivor_fraction * len(self.clients))
        survivors = self.clients[:keep]
        for client in self.clients[keep:]:
            if client.best_score:
                survivors.append(client)
            else:
                client.species = None
        self.clients = survivors

    def breed(self, rng: Random) -> Genome:
        """Cross two members drawn with replacement, fitter parent first."""
        first = rng.choice(self.clients)
        second = rng.choice(self.clients)
        if first.score >= second.score:
            return Genome.cross_over(first.genome, second.genome)
        return Genome.cross_over(second.genome, first.genome)


__all__ = ["Species"]
