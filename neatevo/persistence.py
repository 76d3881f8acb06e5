"""Save and restore population snapshots as JSON files."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any


def save_state(path: Path, state: Mapping[str, Any]) -> None:
    """Persist the mapping returned by ``Population.save`` to disk."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(state, handle, indent=2)
        handle.write("\n")


def load_state(path: Path) -> dict[str, Any]:
    """Load a previously saved snapshot, ready for ``Population(loaded=...)``."""
    source = Path(path)
    with source.open("r", encoding="utf-8") as handle:
        try:
            data: Any = json.load(handle)
        except json.JSONDecodeError as error:
            msg = f"Invalid snapshot payload in {source}: {error}"
            raise ValueError(msg) from error
    if not isinstance(data, dict) or not isinstance(data.get("genome"), dict):
        msg = f"Invalid snapshot payload in {source}"
        raise ValueError(msg)
    genome = data["genome"]
    if not isinstance(genome.get("nodes"), list) or not isinstance(
        genome.get("connections"), list
    ):
        msg = f"Snapshot genome in {source} must list nodes and connections."
        raise ValueError(msg)
    return data


__all__ = ["load_state", "save_state"]
