"""Console progress and event-log reporting for ``Population.fit``."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType


class ProgressPrinter:
    """Prints epoch summaries to stdout.

    ``verbose`` 0 is silent, 1 prints every ``log_interval`` epochs and 2
    prints every epoch with the species count and mutation pressure.
    """

    def __init__(self, verbose: int = 1, log_interval: int = 100) -> None:
        if verbose not in (0, 1, 2):
            msg = f"verbose must be 0, 1 or 2, got {verbose}."
            raise ValueError(msg)
        if log_interval <= 0:
            msg = "log_interval must be positive."
            raise ValueError(msg)
        self.verbose = verbose
        self.log_interval = log_interval

    def epoch(
        self,
        epoch: int,
        *,
        error: float,
        complexity: int,
        validation_error: float | None = None,
        species_count: int = 0,
        pressure: str = "normal",
    ) -> None:
        if self.verbose == 0:
            return
        if self.verbose == 1 and epoch % self.log_interval:
            return
        line = f"Epoch {epoch} - error: {error:.6f} - complexity: {complexity}"
        if validation_error is not None:
            line += f" - val_error: {validation_error:.6f}"
        if self.verbose == 2:
            line += f" - species: {species_count} - pressure: {pressure}"
        print(line)

    def threshold_reached(self, epoch: int) -> None:
        if self.verbose:
            print(f"Training completed: error threshold reached at epoch {epoch}")

    def epoch_limit(self, epochs: int | None) -> None:
        if self.verbose:
            print(f"Training completed: max epochs ({epochs}) reached")


class EventLogger:
    """Append-only run log with one ISO-timestamped line per event.

    Records the start of training, every champion change and the reason the
    run ended. An exception escaping the ``with`` block is logged as an
    aborted run before the file is closed.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self._path.open("a", encoding="utf-8")

    def __enter__(self) -> EventLogger:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.log(f"Run aborted: {exc_type.__name__}: {exc}")
        self.close()

    def log(self, message: str) -> None:
        timestamp = datetime.now(timezone.utc).isoformat()
        self._handle.write(f"{timestamp} {message}\n")
        self._handle.flush()

    def training_started(self, clients: int, train_rows: int, validation_rows: int) -> None:
        self.log(
            f"Training started: {clients} clients, {train_rows} training rows, "
            f"{validation_rows} validation rows"
        )

    def new_champion(self, epoch: int, score: float, complexity: int) -> None:
        self.log(
            f"New champion at epoch {epoch} (score={score:.6f}, complexity={complexity})."
        )

    def stop_requested(self, epoch: int) -> None:
        self.log(f"Stop requested before epoch {epoch}.")

    def threshold_reached(self, epoch: int, error: float) -> None:
        self.log(f"Error threshold reached at epoch {epoch} (error={error:.6f}).")

    def epoch_limit(self, epochs: int | None) -> None:
        self.log(f"Epoch limit ({epochs}) reached.")

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    @property
    def path(self) -> Path:
        return self._path


__all__ = ["EventLogger", "ProgressPrinter"]
