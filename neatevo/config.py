"""Tunable evolution parameters and their YAML loader."""

from __future__ import annotations

import warnings
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

# Upper-case names accepted alongside the snake_case field names.
_ALIASES = {
    "C1": "c1",
    "C2": "c2",
    "C3": "c3",
    "CP": "cp",
    "CT": "ct",
    "PERMANENT_MAIN_CONNECTIONS": "permanent_main_connections",
    "MUTATION_RATE": "mutation_rate",
    "SURVIVORS": "survivors",
    "WEIGHT_SHIFT_STRENGTH": "weight_shift_strength",
    "BIAS_SHIFT_STRENGTH": "bias_shift_strength",
    "WEIGHT_RANDOM_STRENGTH": "weight_random_strength",
    "BIAS_RANDOM_STRENGTH": "bias_random_strength",
    "PROBABILITY_MUTATE_WEIGHT_SHIFT": "probability_mutate_weight_shift",
    "PROBABILITY_MUTATE_WEIGHT_RANDOM": "probability_mutate_weight_random",
    "PROBABILITY_MUTATE_LINK": "probability_mutate_link",
    "PROBABILITY_MUTATE_TOGGLE_LINK": "probability_mutate_toggle_link",
    "PROBABILITY_MUTATE_NODES": "probability_mutate_node",
    "OPT_ERR_THRESHOLD": "opt_err_threshold",
    "OPTIMIZATION_PERIOD": "optimization_period",
    "LAMBDA_HIGH": "lambda_high",
    "LAMBDA_LOW": "lambda_low",
    "EPS": "eps",
    "MIN_CP": "min_cp",
}


@dataclass(frozen=True, slots=True)
class NeatParams:
    """Configuration values governing mutation, speciation and scoring."""

    c1: float = 1.0
    c2: float = 1.0
    c3: float = 0.2
    cp: float = 1.0
    ct: float = 1.0
    permanent_main_connections: bool = False
    mutation_rate: float = 1.0
    survivors: float = 0.4
    weight_shift_strength: float = 0.2
    bias_shift_strength: float = 0.15
    weight_random_strength: float = 1.0
    bias_random_strength: float = 1.0
    probability_mutate_weight_shift: float = 0.8
    probability_mutate_weight_random: float = 0.3
    probability_mutate_link: float = 0.15
    probability_mutate_toggle_link: float = 0.08
    probability_mutate_node: float = 0.1
    opt_err_threshold: float = 0.005
    optimization_period: int = 100
    lambda_high: float = 0.3
    lambda_low: float = 0.1
    eps: float = 1e-4
    min_species: int = 8
    max_species: int = 25
    cp_adjust_rate: float = 0.05
    min_cp: float = 1.0

    def __post_init__(self) -> None:
        if self.c1 < 0 or self.c2 < 0 or self.c3 < 0:
            msg = "Distance coefficients (c1, c2, c3) must be non-negative."
            raise ValueError(msg)
        if self.cp <= 0:
            msg = "cp must be positive."
            raise ValueError(msg)
        if self.ct < 0:
            msg = "ct must be non-negative."
            raise ValueError(msg)
        if not 0.0 <= self.survivors <= 1.0:
            msg = "survivors must be in [0, 1]."
            raise ValueError(msg)
        if self.mutation_rate < 0:
            msg = "mutation_rate must be non-negative."
            raise ValueError(msg)
        for label in (
            "weight_shift_strength",
            "bias_shift_strength",
            "weight_random_strength",
            "bias_random_strength",
            "probability_mutate_weight_shift",
            "probability_mutate_weight_random",
            "probability_mutate_link",
            "probability_mutate_toggle_link",
            "probability_mutate_node",
            "opt_err_threshold",
        ):
            if getattr(self, label) < 0:
                msg = f"{label} must be non-negative."
                raise ValueError(msg)
        if self.optimization_period <= 0:
            msg = "optimization_period must be positive."
            raise ValueError(msg)
        if self.lambda_high < 0 or self.lambda_low < 0:
            msg = "lambda_high and lambda_low must be non-negative."
            raise ValueError(msg)
        if self.min_species < 0 or self.max_species < self.min_species:
            msg = "Species bounds must satisfy 0 <= min_species <= max_species."
            raise ValueError(msg)
        if not 0.0 <= self.cp_adjust_rate < 1.0:
            msg = "cp_adjust_rate must be in [0, 1)."
            raise ValueError(msg)
        if self.min_cp < 0:
            msg = "min_cp must be non-negative."
            raise ValueError(msg)
        self._warn_unusual()

    def _warn_unusual(self) -> None:
        notes: list[str] = []
        if self.probability_mutate_weight_random > 1:
            notes.append(
                "probability_mutate_weight_random typically should be between 0 and 1"
            )
        if self.ct > 1000:
            notes.append(f"ct threshold is unusually high: {self.ct}")
        if self.cp > 10:
            notes.append(f"cp threshold is unusually high: {self.cp}")
        if self.mutation_rate > 10:
            notes.append(f"mutation_rate is unusually high: {self.mutation_rate}")
        if self.weight_shift_strength > 1:
            notes.append(
                f"weight_shift_strength is very high ({self.weight_shift_strength}); "
                "recommended range is 0.1-0.3"
            )
        if self.survivors > 0.6:
            notes.append(
                f"survivors is high ({self.survivors}); weak selection pressure "
                "may slow evolution"
            )
        if self.probability_mutate_link > 2:
            notes.append(
                f"probability_mutate_link is high ({self.probability_mutate_link}); "
                "expect rapid network growth"
            )
        if (
            self.weight_shift_strength > 0
            and self.bias_shift_strength > 0
            and abs(self.weight_shift_strength - self.bias_shift_strength)
            / self.weight_shift_strength
            > 0.8
        ):
            notes.append(
                "weight_shift_strength and bias_shift_strength are highly imbalanced"
            )
        if self.lambda_high > 0.8:
            notes.append(f"lambda_high is very high ({self.lambda_high})")
        if self.lambda_low > 0.5:
            notes.append(f"lambda_low is high ({self.lambda_low})")
        if not 1e-6 <= self.eps <= 1e-2:
            notes.append(f"eps is outside the typical range ({self.eps})")
        for note in notes:
            warnings.warn(note, stacklevel=3)

    @classmethod
    def from_mapping(cls, overrides: Mapping[str, Any]) -> NeatParams:
        """Build parameters from defaults plus ``overrides``.

        Keys may use the field names or their upper-case aliases
        (``PROBABILITY_MUTATE_NODES`` and friends).
        """
        return cls().with_overrides(overrides)

    def with_overrides(self, overrides: Mapping[str, Any]) -> NeatParams:
        known = {item.name: item for item in fields(self)}
        changes: dict[str, Any] = {}
        for key, value in overrides.items():
            name = _ALIASES.get(key, key)
            field_info = known.get(name)
            if field_info is None:
                msg = f"Unknown parameter: {key!r}"
                raise ValueError(msg)
            changes[name] = _coerce(value, field_info.type, label=name)
        return replace(self, **changes)


def _coerce(value: Any, annotation: object, *, label: str) -> Any:
    try:
        if annotation == "bool":
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
        if annotation == "int":
            return int(value)
        return float(value)
    except (TypeError, ValueError) as error:
        msg = f"Invalid value for {label}: {value!r}"
        raise ValueError(msg) from error


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, Mapping):
        msg = f"Expected mapping in YAML file: {path}"
        raise ValueError(msg)
    return data


def load_params(path: Path) -> NeatParams:
    """Read a YAML mapping of parameter overrides.

    A top-level ``neat`` section is used when present, so run files can keep
    other settings alongside the evolution parameters.
    """
    data = _load_yaml(Path(path))
    section = data.get("neat", data)
    if not isinstance(section, Mapping):
        msg = f"Expected 'neat' to be a mapping in {path}"
        raise ValueError(msg)
    return NeatParams.from_mapping(section)


__all__ = ["NeatParams", "load_params"]
