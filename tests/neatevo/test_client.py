from __future__ import annotations

from random import Random

import pytest
from neatevo.client import Client
from neatevo.innovations import InnovationRegistry
from neatevo.network import Activation


def _client(seed: int = 0) -> Client:
    registry = InnovationRegistry(2, 1, rng=Random(seed))
    return Client(registry.empty_genome(), output_activation="linear")


def test_defaults() -> None:
    client = _client()

    assert client.error == pytest.approx(1.0)
    assert client.best_score is False
    assert client.species is None
    assert client.output_activation is Activation.LINEAR
    assert client.complexity == 3


def test_network_is_cached_until_genome_changes() -> None:
    client = _client()
    network = client.network
    assert client.network is network

    client.genome = client.genome.copy()

    assert client.network is not network



def test_generate_network_returns_cached_network() -> None:
    client = _client()

    built = client.generate_network()

    assert client.network is built
    assert built.activate([0.5, 0.5]) == [pytest.approx(0.0)]

def test_calculate_uses_current_genome() -> None:
    client = _client()
    assert client.calculate([1.0, 1.0]) == [pytest.approx(0.0)]

    genome = client.genome.copy()
    connection = genome.registry.get_connection(genome.node(1), genome.node(3))
    connection.weight = 2.0
    genome.connections.add_sorted(connection)
    client.genome = genome

    assert client.calculate([1.0, 1.0]) == [pytest.approx(2.0)]


def test_best_client_is_not_mutated_unless_forced() -> None:
    client = _client()
    client.best_score = True

    assert client.mutate() == 0
    assert len(client.genome.connections) == 0

    for _ in range(5):
        client.mutate(force=True)
    assert len(client.genome.connections) > 0


def test_mutate_invalidates_network() -> None:
    client = _client(seed=4)
    network = client.network

    client.mutate()

    assert client.network is not network


def test_distance_delegates_to_genomes() -> None:
    registry = InnovationRegistry(2, 1, rng=Random(1))
    first = Client(registry.empty_genome())
    second = Client(registry.empty_genome())

    assert first.distance(second) == 0
