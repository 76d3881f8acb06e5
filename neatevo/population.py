"""Population orchestration for the NEAT evolutionary loop."""

from __future__ import annotations

import math
import warnings
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from random import Random
from typing import Any

from .client import Client
from .config import NeatParams
from .genes import INPUT_NODE_X, OUTPUT_NODE_X
from .genome import Genome, MutationPressure
from .innovations import InnovationRegistry
from .metrics import MetricsRow, MetricsWriter
from .network import Activation, DimensionMismatchError
from .reporters import EventLogger, ProgressPrinter
from .selection import RandomSelector
from .species import Species

HISTORY_WINDOW = 80
SMALL_GAIN_THRESHOLD = 0.001
COMPLEXITY_GROWTH_ABS = 30
COMPLEXITY_GROWTH_RATIO = 0.1
BOOST_AFTER = 80
ESCAPE_AFTER = 200
PANIC_AFTER = 400
PANIC_RESET_AFTER = 405
MIN_SCORE_SPAN = 0.05

Dataset = Sequence[Sequence[float]]


@dataclass(slots=True)
class Champion:
    """Best client seen so far, kept outside the population."""

    client: Client
    score_raw: float
    complexity: int
    epoch: int = 0


@dataclass(slots=True)
class FitHistory:
    """Outcome of a ``fit`` call.

    ``error`` holds one training error per evaluated epoch and
    ``validation_error`` (when a split was requested) one entry per epoch too.
    """

    error: list[float] = field(default_factory=list)
    validation_error: list[float] | None = None
    epochs: int = 0
    champion: Genome | None = None
    stopped_early: bool = False
    interrupted: bool = False


class Population:
    """Owns the clients, species and innovation registry of one run."""

    def __init__(
        self,
        input_count: int,
        output_count: int,
        population_size: int,
        output_activation: Activation | str = Activation.SIGMOID,
        hidden_activation: Activation | str = Activation.TANH,
        params: NeatParams | Mapping[str, Any] | None = None,
        loaded: Mapping[str, Any] | None = None,
        *,
        rng: Random | None = None,
    ) -> None:
        if population_size <= 0:
            msg = "Population size must be positive."
            raise ValueError(msg)
        if isinstance(params, NeatParams):
            self.params = params
        else:
            self.params = NeatParams.from_mapping(params or {})
        self.population_size = population_size
        self.output_activation = Activation.coerce(output_activation)
        self.hidden_activation = Activation.coerce(hidden_activation)
        self.rng = Random() if rng is None else rng
        self.registry = InnovationRegistry(
            input_count,
            output_count,
            self.params,
            rng=self.rng,
        )
        self.clients: list[Client] = []
        self.species: list[Species] = []
        self._reset_progress()
        if loaded is None:
            self.reset(input_count, output_count)
        else:
            self._restore(loaded)

    @property
    def input_count(self) -> int:
        return self.registry.input_count

    @property
    def output_count(self) -> int:
        return self.registry.output_count

    @property
    def compatibility_threshold(self) -> float:
        return self.registry.compatibility_threshold

    @property
    def optimization(self) -> bool:
        return self.registry.optimization

    def _reset_progress(self) -> None:
        self.evolve_count = 0
        self.champion: Champion | None = None
        self.pressure = MutationPressure.NORMAL
        self.stagnation_count = 0
        self._reference_score = 0.0
        self._score_history: deque[float] = deque(maxlen=HISTORY_WINDOW)
        self._complexity_history: deque[int] = deque(maxlen=HISTORY_WINDOW)

    def _new_client(self, genome: Genome) -> Client:
        return Client(genome, self.output_activation, self.hidden_activation)

    def reset(self, input_count: int, output_count: int) -> None:
        """Rebuild the registry and fill the population with empty genomes."""
        self.registry.reset(input_count, output_count)
        self._reset_progress()
        self.species = []
        self.clients = [
            self._new_client(self.registry.empty_genome())
            for _ in range(self.population_size)
        ]
        for client in self.clients:
            client.generate_network()

    def empty_genome(self) -> Genome:
        return self.registry.empty_genome()

    # -- persistence ----------------------------------------------------------

    def save(self) -> dict[str, Any]:
        """Export the best client's genome with nodes renumbered from 1."""
        data = self.best_client().genome.save()
        nodes = sorted(data["nodes"], key=lambda node: node["innovationNumber"])
        renumber = {
            node["innovationNumber"]: index for index, node in enumerate(nodes, start=1)
        }
        for node in nodes:
            node["innovationNumber"] = renumber[node["innovationNumber"]]
        for connection in data["connections"]:
            connection["from"] = renumber[connection["from"]]
            connection["to"] = renumber[connection["to"]]
            connection["replaceIndex"] = renumber.get(connection["replaceIndex"], 0)
        data["nodes"] = nodes
        return {"genome": data, "evolve_counts": self.evolve_count}

    def load(self, state: Mapping[str, Any]) -> None:
        """Seed every client with the genome stored in ``state``."""
        self._restore(state)

    def _restore(self, state: Mapping[str, Any]) -> None:
        # Reached through one public frame, so stacklevel 3 names its caller.
        genome_data = state.get("genome")
        if not isinstance(genome_data, Mapping):
            msg = 'Invalid load data: a "genome" mapping is required.'
            raise ValueError(msg)
        evolve_counts = state.get("evolve_counts", state.get("evolveCounts"))
        if evolve_counts is None:
            warnings.warn("Load data missing evolve counts, defaulting to 0", stacklevel=3)
            evolve_counts = 0

        try:
            positions = [float(record["x"]) for record in genome_data["nodes"]]
        except (KeyError, TypeError, ValueError) as error:
            msg = f"Invalid load data: malformed node records ({error!r})."
            raise ValueError(msg) from error
        inputs = sum(1 for x in positions if x <= INPUT_NODE_X)
        outputs = sum(1 for x in positions if x >= OUTPUT_NODE_X)
        if inputs != self.input_count or outputs != self.output_count:
            msg = (
                f"Loaded genome has {inputs} inputs and {outputs} outputs, expected "
                f"{self.input_count} and {self.output_count}."
            )
            raise DimensionMismatchError(msg)

        self.registry.reset(self.input_count, self.output_count)
        self._reset_progress()
        self.species = []
        self.clients = [
            self._new_client(self.registry.load_genome(genome_data))
            for _ in range(self.population_size)
        ]
        self.evolve_count = int(evolve_counts)

    # -- evaluation helpers ---------------------------------------------------

    def best_client(self) -> Client:
        for client in self.clients:
            if client.best_score:
                return client
        return self.clients[0]

    def calculate(self, inputs: Sequence[float]) -> list[float]:
        """Evaluate the champion, or the current best client before one exists."""
        if self.champion is not None:
            return self.champion.client.calculate(inputs)
        return self.best_client().calculate(inputs)

    # -- generation step ------------------------------------------------------

    def evolve(self, optimize: bool = False) -> None:
        """Advance the population by one generation."""
        self.evolve_count += 1
        period = self.params.optimization_period
        self.registry.optimization = optimize or self.evolve_count % period == 0
        self._update_champion()
        self._normalize_scores()
        self._speciate()
        self._kill()
        self._remove_extinct_species()
        self._reproduce()
        self._mutate()
        for client in self.clients:
            client.generate_network()

    def _update_champion(self) -> None:
        if self.champion is not None:
            self._update_pressure()
            self.champion.epoch += 1

        self.clients.sort(key=lambda client: client.score, reverse=True)
        best = self.clients[0]
        complexity = best.complexity
        champion = self.champion

        if (
            champion is None
            or best.score > champion.score_raw + SMALL_GAIN_THRESHOLD
            or (
                abs(best.score - champion.score_raw) <= SMALL_GAIN_THRESHOLD
                and complexity < champion.complexity
            )
        ):
            self.champion = Champion(
                client=self._new_client(best.genome.copy()),
                score_raw=best.score,
                complexity=complexity,
            )
            return

        if champion.epoch >= self.params.optimization_period:
            # Reintroduce the champion in place of the weakest client.
            champion.epoch = 0
            weakest = self.clients[-1]
            weakest.genome = champion.client.genome.copy()
            weakest.score = champion.score_raw

    def _update_pressure(self) -> None:
        champion = self.champion
        if champion is None:
            return

        if abs(champion.score_raw - self._reference_score) <= self.params.opt_err_threshold:
            self.stagnation_count += 1
        else:
            self._reference_score = champion.score_raw
            self.stagnation_count = 0

        self._score_history.append(champion.score_raw)
        self._complexity_history.append(champion.complexity)

        if self.stagnation_count > HISTORY_WINDOW and len(self._score_history) >= 2:
            gain = max(self._score_history) - self._score_history[0]
            first = self._complexity_history[0]
            growth = self._complexity_history[-1] - first
            if first > 0:
                ratio = growth / first
            else:
                ratio = 1.0 if growth > 0 else 0.0
            growing = growth >= COMPLEXITY_GROWTH_ABS or ratio >= COMPLEXITY_GROWTH_RATIO
            if growing and gain <= SMALL_GAIN_THRESHOLD:
                self.pressure = MutationPressure.COMPACT
                self.registry.optimization = True
                return

        if self.stagnation_count > PANIC_RESET_AFTER:
            self.stagnation_count = ESCAPE_AFTER
        elif self.stagnation_count > PANIC_AFTER:
            self.pressure = MutationPressure.PANIC
        elif self.stagnation_count > ESCAPE_AFTER:
            self.pressure = MutationPressure.ESCAPE
        elif self.stagnation_count > BOOST_AFTER:
            self.pressure = MutationPressure.BOOST
        else:
            self.pressure = MutationPressure.NORMAL

    def _normalize_scores(self) -> None:
        """Rescale scores to [0, 1] after a complexity penalty.

        ``score_raw`` keeps the evaluated score. Exactly one client, the
        highest raw score with the fewest genes, is flagged ``best_score``.
        """
        clients = self.clients
        for client in clients:
            client.best_score = False
            client.score_raw = client.score
        raw_max = max(client.score_raw for client in clients)
        raw_min = min(client.score_raw for client in clients)
        complexity_max = max(client.complexity for client in clients)

        span = (raw_max - raw_min) or 1.0
        span = max(span, MIN_SCORE_SPAN)
        penalty_rate = (
            self.params.lambda_high if self.registry.optimization else self.params.lambda_low
        )
        log_max = math.log1p(complexity_max)
        for client in clients:
            normalized = math.log1p(client.complexity) / log_max if log_max else 0.0
            client.adjusted_score = client.score_raw - penalty_rate * normalized * span

        adjusted_max = max(client.adjusted_score for client in clients)
        adjusted_min = min(client.adjusted_score for client in clients)
        adjusted_span = (adjusted_max - adjusted_min) or 1.0
        for client in clients:
            client.score = (client.adjusted_score - adjusted_min) / adjusted_span

        clients.sort(key=lambda client: client.score, reverse=True)
        ties = [client for client in clients if client.score_raw == raw_max]
        best = min(ties, key=lambda client: client.complexity) if ties else clients[0]
        best.best_score = True

    def _speciate(self) -> None:
        for species in self.species:
            species.reset(self.rng)
        for client in self.clients:
            if client.species is not None:
                continue
            for species in self.species:
                if species.put(client):
                    break
            else:
                self.species.append(Species(client))
        for species in self.species:
            species.evaluate_score()

    def _kill(self) -> None:
        for species in self.species:
            species.kill(self.params.survivors)

    def _remove_extinct_species(self) -> None:
        for index in range(len(self.species) - 1, -1, -1):
            species = self.species[index]
            protected = bool(species.clients) and species.clients[0].best_score
            if len(species) <= 1 and not protected and len(self.species) > 1:
                species.go_extinct()
                del self.species[index]

    def _reproduce(self) -> None:
        selector: RandomSelector[Species] = RandomSelector()
        for species in self.species:
            selector.add(species, species.score)

        for client in self.clients:
            if client.species is not None:
                continue
            chosen = selector.random(self.rng)
            if self.pressure is MutationPressure.PANIC and self.champion is not None:
                client.genome = self._panic_genome(self.champion)
            else:
                client.genome = chosen.breed(self.rng)
            chosen.put(client, force=True)
        selector.reset()
        self._adapt_compatibility_threshold()

    def _panic_genome(self, champion: Champion) -> Genome:
        fresh = self.registry.empty_genome()
        fresh.mutate()
        if self.rng.random() > 0.5:
            genome = Genome.cross_over(champion.client.genome, fresh)
        else:
            genome = fresh
        genome.mutate()
        genome.mutate()
        return genome

    def _adapt_compatibility_threshold(self) -> None:
        count = len(self.species)
        rate = self.params.cp_adjust_rate
        threshold = self.registry.compatibility_threshold
        if count < self.params.min_species:
            threshold *= 1.0 - rate
        elif count > self.params.max_species:
            threshold *= 1.0 + rate
        # Below the floor every non-clone becomes a singleton species and is culled.
        floor = min(self.params.min_cp, self.params.cp)
        self.registry.compatibility_threshold = max(threshold, floor)

    def _mutate(self) -> None:
        force = self.evolve_count == 1
        for client in self.clients:
            client.mutate(force, self.pressure)

    # -- training loop --------------------------------------------------------

    def fit(
        self,
        x_train: Dataset,
        y_train: Dataset,
        *,
        epochs: int | None = None,
        error_threshold: float | None = None,
        validation_split: float = 0.0,
        verbose: int = 1,
        log_interval: int = 100,
        should_stop: Callable[[], bool] | None = None,
        events_path: Path | None = None,
        metrics_path: Path | None = None,
    ) -> FitHistory:
        """Evolve against a supervised dataset until the error threshold is met.

        Args:
            x_train: Input rows, each ``input_count`` wide.
            y_train: Target rows, each ``output_count`` wide.
            epochs: Maximum number of epochs; unbounded when ``None``.
            error_threshold: Stop once the best mean absolute error is at or
                below this value. Defaults to ``opt_err_threshold``.
            validation_split: Trailing fraction of rows held out and scored on
                the best client of each epoch.
            verbose: 0 silent, 1 every ``log_interval`` epochs, 2 every epoch.
            should_stop: Polled between epochs; returning ``True`` ends the run.
            events_path: Optional event log location.
            metrics_path: Optional per-epoch CSV location.
        """
        progress = ProgressPrinter(verbose, log_interval)
        train_x, train_y, val_x, val_y = self._split_dataset(
            x_train, y_train, validation_split
        )
        max_epochs = math.inf if epochs is None else epochs
        threshold = (
            self.params.opt_err_threshold if error_threshold is None else error_threshold
        )
        validation_errors: list[float] | None = [] if val_x else None
        history = FitHistory(validation_error=validation_errors)

        with ExitStack() as stack:
            events = (
                stack.enter_context(EventLogger(events_path)) if events_path else None
            )
            metrics = (
                stack.enter_context(MetricsWriter(metrics_path)) if metrics_path else None
            )
            if events is not None:
                events.training_started(len(self.clients), len(train_x), len(val_x))

            epoch = 0
            top: Client | None = None
            while epoch < max_epochs:
                if should_stop is not None and should_stop():
                    history.interrupted = True
                    if events is not None:
                        events.stop_requested(epoch)
                    break

                top = self._evaluate(train_x, train_y)
                train_error = top.error
                history.error.append(train_error)

                validation_error = None
                if validation_errors is not None:
                    validation_error = _mean_absolute_error(top, val_x, val_y)
                    validation_errors.append(validation_error)

                progress.epoch(
                    epoch,
                    error=train_error,
                    complexity=top.complexity,
                    validation_error=validation_error,
                    species_count=len(self.species),
                    pressure=str(self.pressure),
                )
                if metrics is not None:
                    metrics.append(
                        MetricsRow(
                            epoch=epoch,
                            error=train_error,
                            validation_error=validation_error,
                            complexity=top.complexity,
                            species_count=len(self.species),
                            pressure=str(self.pressure),
                        )
                    )

                if train_error <= threshold:
                    history.stopped_early = True
                    history.epochs = epoch + 1
                    history.champion = top.genome.copy()
                    progress.threshold_reached(epoch)
                    if events is not None:
                        events.threshold_reached(epoch, train_error)
                    return history

                previous = self.champion
                self.evolve(train_error <= self.params.opt_err_threshold)
                current = self.champion
                if events is not None and current is not None and current is not previous:
                    events.new_champion(epoch, current.score_raw, current.complexity)
                epoch += 1

            history.epochs = epoch
            if self.champion is not None:
                history.champion = self.champion.client.genome.copy()
            elif top is not None:
                history.champion = top.genome.copy()
            else:
                history.champion = self.best_client().genome.copy()
            if not history.interrupted:
                progress.epoch_limit(epochs)
                if events is not None:
                    events.epoch_limit(epochs)
        return history

    def _split_dataset(
        self,
        x_train: Dataset,
        y_train: Dataset,
        validation_split: float,
    ) -> tuple[Dataset, Dataset, Dataset, Dataset]:
        if not x_train or not y_train:
            msg = "Training data cannot be empty."
            raise ValueError(msg)
        if len(x_train) != len(y_train):
            msg = (
                "Input and output data must have the same length "
                f"(got {len(x_train)} vs {len(y_train)})."
            )
            raise DimensionMismatchError(msg)
        for row in x_train:
            if len(row) != self.input_count:
                msg = f"Input dimension mismatch: expected {self.input_count}, got {len(row)}."
                raise DimensionMismatchError(msg)
        for row in y_train:
            if len(row) != self.output_count:
                msg = (
                    f"Output dimension mismatch: expected {self.output_count}, "
                    f"got {len(row)}."
                )
                raise DimensionMismatchError(msg)
        if not 0.0 <= validation_split <= 1.0:
            msg = "validation_split must be between 0 and 1."
            raise ValueError(msg)
        if validation_split == 0.0:
            return x_train, y_train, (), ()

        split_index = math.floor(len(x_train) * (1.0 - validation_split))
        if split_index == 0:
            msg = "Validation split too large, no training data remaining."
            raise ValueError(msg)
        return (
            x_train[:split_index],
            y_train[:split_index],
            x_train[split_index:],
            y_train[split_index:],
        )

    def _evaluate(self, x_rows: Dataset, y_rows: Dataset) -> Client:
        """Score every client as ``1 - mean absolute error``; return the best."""
        top = self.clients[0]
        top_score = -math.inf
        for client in self.clients:
            client.error = _mean_absolute_error(client, x_rows, y_rows)
            client.score = 1.0 - client.error
            if client.score > top_score:
                top_score = client.score
                top = client
        return top


def _mean_absolute_error(client: Client, x_rows: Dataset, y_rows: Dataset) -> float:
    total = 0.0
    count = 0
    for inputs, targets in zip(x_rows, y_rows, strict=True):
        outputs = client.calculate(inputs)
        for value, target in zip(outputs, targets, strict=True):
            total += abs(value - target)
            count += 1
    return total / count if count else 0.0


__all__ = ["Champion", "FitHistory", "Population"]
