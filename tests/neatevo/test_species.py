from __future__ import annotations

from random import Random

import pytest
from neatevo.client import Client
from neatevo.innovations import InnovationRegistry
from neatevo.species import Species


def _clients(count: int, seed: int = 0) -> list[Client]:
    registry = InnovationRegistry(2, 1, rng=Random(seed))
    return [Client(registry.empty_genome()) for _ in range(count)]


def _species_with_scores(scores: list[float]) -> Species:
    clients = _clients(len(scores))
    for client, score in zip(clients, scores, strict=True):
        client.score = score
        client.score_raw = score
    species = Species(clients[0])
    for client in clients[1:]:
        species.put(client, force=True)
    return species


def test_evaluate_score_is_member_mean() -> None:
    species = _species_with_scores([10.0, 20.0, 30.0])

    assert species.evaluate_score() == pytest.approx(20.0)
    assert species.score == pytest.approx(20.0)


def test_evaluate_score_of_empty_species_is_zero() -> None:
    species = _species_with_scores([5.0])
    species.go_extinct()

    assert species.evaluate_score() == 0.0


def test_put_respects_compatibility_threshold() -> None:
    clients = _clients(2)
    near, far = clients
    species = Species(near)
    registry = far.genome.registry
    connection = registry.get_connection(far.genome.node(1), far.genome.node(3))
    far.genome.connections.add_sorted(connection)

    registry.compatibility_threshold = 0.5
    assert species.put(far) is False
    assert far.species is None

    registry.compatibility_threshold = 2.0
    assert species.put(far) is True
    assert far.species is species


def test_kill_keeps_top_fraction_and_best_client() -> None:
    species = _species_with_scores([40.0, 30.0, 20.0, 10.0])
    weakest = next(client for client in species.clients if client.score_raw == 10.0)
    weakest.best_score = True

    species.kill(0.5)

    assert sorted(client.score_raw for client in species.clients) == [10.0, 30.0, 40.0]


def test_kill_detaches_removed_clients() -> None:
    species = _species_with_scores([3.0, 2.0, 1.0])
    removed = [client for client in species.clients if client.score_raw == 1.0]

    species.kill(0.5)

    assert len(species) == 2
    assert removed[0].species is None


def test_reset_keeps_single_member_representative() -> None:
    species = _species_with_scores([1.0, 2.0, 3.0])
    members = list(species.clients)

    species.reset(Random(3))

    assert len(species) == 1
    assert species.representative in members
    assert species.representative.species is species
    assert sum(1 for client in members if client.species is species) == 1


def test_go_extinct_clears_membership() -> None:
    species = _species_with_scores([1.0, 2.0])
    members = list(species.clients)

    species.go_extinct()

    assert len(species) == 0
    assert all(client.species is None for client in members)


def test_breed_returns_genome_on_shared_registry() -> None:
    species = _species_with_scores([1.0, 2.0])
    registry = species.representative.genome.registry

    child = species.breed(Random(0))

    assert child.registry is registry
    assert [node.innovation_number for node in child.nodes] == [1, 2, 3]
