from __future__ import annotations

import csv
from pathlib import Path
from random import Random
from typing import Any

import pytest
from neatevo.genome import MutationPressure
from neatevo.network import DimensionMismatchError
from neatevo.persistence import load_state, save_state
from neatevo.population import Population

XOR_X = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
XOR_Y = [[0.0], [1.0], [1.0], [0.0]]


def _population(size: int = 12, seed: int = 0, **kwargs: Any) -> Population:
    return Population(2, 1, size, rng=Random(seed), **kwargs)


def _score_randomly(population: Population, rng: Random) -> None:
    for client in population.clients:
        client.score = rng.random()


def test_constructor_validates_sizes() -> None:
    with pytest.raises(ValueError):
        Population(2, 1, 0)
    with pytest.raises(ValueError):
        Population(0, 1, 5)


def test_reset_fills_population_with_empty_genomes() -> None:
    population = _population(size=7)

    assert len(population.clients) == 7
    assert all(client.complexity == 3 for client in population.clients)
    assert population.compatibility_threshold == pytest.approx(population.params.cp)
    assert population.optimization is False


def test_params_accept_plain_mapping() -> None:
    population = _population(params={"SURVIVORS": 0.5, "c1": 2.0})

    assert population.params.survivors == pytest.approx(0.5)
    assert population.params.c1 == pytest.approx(2.0)


def test_evolve_keeps_size_and_flags_single_best() -> None:
    population = _population(size=20, seed=1)
    rng = Random(5)

    for _ in range(6):
        _score_randomly(population, rng)
        population.evolve()

        assert len(population.clients) == 20
        assert sum(client.best_score for client in population.clients) == 1
        assert all(client.species is not None for client in population.clients)
        assert sum(len(species) for species in population.species) == 20

    assert population.evolve_count == 6
    assert population.champion is not None


def test_first_evolve_adapts_threshold_for_few_species() -> None:
    population = _population(size=10, params={"CP": 2.0})
    _score_randomly(population, Random(0))

    population.evolve()

    assert population.compatibility_threshold == pytest.approx(1.9)


def test_threshold_never_shrinks_below_floor() -> None:
    population = _population(size=10)
    rng = Random(0)
    for _ in range(5):
        _score_randomly(population, rng)
        population.evolve()

    assert population.compatibility_threshold == pytest.approx(1.0)


def test_lower_floor_lets_threshold_shrink() -> None:
    population = _population(size=10, params={"MIN_CP": 0.5, "min_species": 20})
    rng = Random(0)
    for _ in range(3):
        _score_randomly(population, rng)
        population.evolve()

    assert population.compatibility_threshold == pytest.approx(0.95**3)


def test_floor_above_starting_threshold_keeps_it_fixed() -> None:
    population = _population(size=10, params={"CP": 0.6, "MIN_CP": 1.0})
    _score_randomly(population, Random(0))

    population.evolve()

    assert population.compatibility_threshold == pytest.approx(0.6)


def test_best_score_prefers_simpler_client_on_ties() -> None:
    population = _population(size=4, seed=2)
    complex_client = population.clients[0]
    for _ in range(5):
        complex_client.genome.mutate_link()
    for client in population.clients:
        client.score = 0.5

    population._normalize_scores()

    best = next(client for client in population.clients if client.best_score)
    assert best.complexity == 3


def test_optimisation_mode_follows_period() -> None:
    population = _population(size=6, params={"OPTIMIZATION_PERIOD": 2})
    rng = Random(3)

    _score_randomly(population, rng)
    population.evolve()
    assert population.optimization is False

    _score_randomly(population, rng)
    population.evolve()
    assert population.optimization is True

    _score_randomly(population, rng)
    population.evolve(optimize=True)
    assert population.optimization is True


def test_pressure_escalates_with_stagnation() -> None:
    population = _population(size=6)
    _score_randomly(population, Random(0))
    population.evolve()
    population.stagnation_count = 0

    for expected_after, expected in (
        (81, MutationPressure.BOOST),
        (201, MutationPressure.ESCAPE),
        (401, MutationPressure.PANIC),
    ):
        while population.stagnation_count < expected_after:
            population._update_pressure()
        assert population.pressure is expected

    for _ in range(5):
        population._update_pressure()
    assert population.stagnation_count == 200


def test_fit_validates_dataset() -> None:
    population = _population()

    with pytest.raises(ValueError, match="cannot be empty"):
        population.fit([], [], epochs=1, verbose=0)
    with pytest.raises(DimensionMismatchError, match="same length"):
        population.fit(XOR_X, XOR_Y[:3], epochs=1, verbose=0)
    with pytest.raises(DimensionMismatchError, match="Input dimension"):
        population.fit([[1.0]], [[1.0]], epochs=1, verbose=0)
    with pytest.raises(DimensionMismatchError, match="Output dimension"):
        population.fit([[1.0, 0.0]], [[1.0, 0.0]], epochs=1, verbose=0)
    with pytest.raises(ValueError, match="between 0 and 1"):
        population.fit(XOR_X, XOR_Y, epochs=1, validation_split=1.5, verbose=0)
    with pytest.raises(ValueError, match="too large"):
        population.fit(XOR_X, XOR_Y, epochs=1, validation_split=1.0, verbose=0)
    with pytest.raises(ValueError):
        population.fit(XOR_X, XOR_Y, epochs=1, verbose=0, log_interval=0)

    assert population.evolve_count == 0


def test_fit_records_history_and_validation(capsys: pytest.CaptureFixture[str]) -> None:
    population = _population(size=10)

    history = population.fit(
        XOR_X,
        XOR_Y,
        epochs=3,
        error_threshold=0.0,
        validation_split=0.25,
        verbose=2,
    )

    assert history.epochs == 3
    assert len(history.error) == 3
    assert history.validation_error is not None
    assert len(history.validation_error) == 3
    assert history.champion is not None
    assert history.stopped_early is False
    output = capsys.readouterr().out
    assert "Epoch 0 - error:" in output
    assert "val_error" in output
    assert "pressure: " in output


def test_fit_stops_once_error_threshold_is_met() -> None:
    population = _population(size=5)

    history = population.fit(XOR_X, XOR_Y, epochs=10, error_threshold=1.0, verbose=0)

    assert history.stopped_early is True
    assert history.epochs == 1
    assert population.evolve_count == 0


def test_fit_honours_stop_request() -> None:
    population = _population(size=5)
    polls: list[int] = []

    def should_stop() -> bool:
        polls.append(1)
        return len(polls) > 2

    history = population.fit(
        XOR_X, XOR_Y, error_threshold=0.0, verbose=0, should_stop=should_stop
    )

    assert history.interrupted is True
    assert history.epochs == 2
    assert len(history.error) == 2


def test_fit_writes_event_log_and_metrics(tmp_path: Path) -> None:
    population = _population(size=8)
    events_path = tmp_path / "run" / "events.log"
    metrics_path = tmp_path / "run" / "metrics.csv"

    population.fit(
        XOR_X,
        XOR_Y,
        epochs=3,
        error_threshold=0.0,
        verbose=0,
        events_path=events_path,
        metrics_path=metrics_path,
    )

    log_text = events_path.read_text(encoding="utf-8")
    assert "Training started" in log_text
    assert "Epoch limit (3) reached." in log_text
    with metrics_path.open("r", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["epoch"] for row in rows] == ["0", "1", "2"]
    assert rows[0]["validation_error"] == ""
    assert rows[0]["pressure"] == "normal"


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    population = _population(size=10, seed=4)
    population.fit(XOR_X, XOR_Y, epochs=15, error_threshold=0.0, verbose=0)
    state = population.save()
    path = tmp_path / "state.json"
    save_state(path, state)

    restored = Population(2, 1, 6, loaded=load_state(path), rng=Random(0))

    assert restored.evolve_count == population.evolve_count
    assert len(restored.clients) == 6
    expected = population.best_client().calculate([1.0, 0.0])
    for client in restored.clients:
        assert client.calculate([1.0, 0.0]) == pytest.approx(expected)
    assert restored.clients[0].genome.save() == state["genome"]


def test_save_renumbers_nodes_contiguously() -> None:
    population = _population(size=4, seed=6)
    genome = population.best_client().genome
    for _ in range(10):
        genome.mutate_link()
        genome.mutate_node()

    data = population.save()["genome"]

    numbers = [node["innovationNumber"] for node in data["nodes"]]
    assert numbers == list(range(1, len(numbers) + 1))
    for connection in data["connections"]:
        assert 1 <= connection["from"] <= len(numbers)
        assert 1 <= connection["to"] <= len(numbers)
        assert 0 <= connection["replaceIndex"] <= len(numbers)


def test_load_rejects_mismatched_dimensions() -> None:
    state = _population().save()

    with pytest.raises(DimensionMismatchError):
        Population(3, 1, 4, loaded=state)


def test_load_rejects_malformed_state() -> None:
    with pytest.raises(ValueError):
        Population(2, 1, 4, loaded={"evolve_counts": 3})
    with pytest.raises(ValueError):
        Population(2, 1, 4, loaded={"genome": {"nodes": [{"y": 0.5}], "connections": []}})


def test_load_warns_without_evolve_counts() -> None:
    state = _population().save()
    del state["evolve_counts"]

    with pytest.warns(UserWarning, match="evolve counts"):
        restored = Population(2, 1, 3, loaded=state)
    assert restored.evolve_count == 0


def test_load_warning_points_at_caller() -> None:
    state = _population().save()
    del state["evolve_counts"]
    population = _population(size=3)

    with pytest.warns(UserWarning, match="evolve counts") as record:
        population.load(state)
    with pytest.warns(UserWarning, match="evolve counts") as constructed:
        Population(2, 1, 3, loaded=state)

    assert record[0].filename == __file__
    assert constructed[0].filename == __file__


def test_load_accepts_camel_case_counter() -> None:
    state = _population().save()
    state["evolveCounts"] = state.pop("evolve_counts") + 7

    restored = Population(2, 1, 3, loaded=state)

    assert restored.evolve_count == 7


@pytest.mark.slow
def test_learns_xor() -> None:
    errors = []
    stopped = False
    for seed in range(3):
        population = Population(2, 1, 60, rng=Random(seed))
        history = population.fit(
            XOR_X, XOR_Y, epochs=500, error_threshold=0.1, verbose=0
        )
        errors.append(min(history.error))
        if history.stopped_early:
            stopped = True
            break

    assert stopped
    assert min(errors) <= 0.1
