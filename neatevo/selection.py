"""Fitness-proportionate sampling."""

from __future__ import annotations

from random import Random
from typing import Generic, TypeVar

T = TypeVar("T")


class RandomSelector(Generic[T]):
    """Roulette-wheel selector over scored items.

    Negative scores count as zero. When every score is zero the draw falls
    back to a uniform choice.
    """

    def __init__(self) -> None:
        self._items: list[T] = []
        self._scores: list[float] = []
        self._total = 0.0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> tuple[T, ...]:
        return tuple(self._items)

    @property
    def total_score(self) -> float:
        return self._total

    def add(self, item: T, score: float) -> None:
        weight = max(float(score), 0.0)
        self._items.append(item)
        self._scores.append(weight)
        self._total += weight

    def random(self, rng: Random) -> T:
        """Draw one item with probability proportional to its score."""
        if not self._items:
            msg = "Cannot select from an empty selector."
            raise ValueError(msg)
        if self._total <= 0.0:
            return rng.choice(self._items)

        target = rng.random() * self._total
        cumulative = 0.0
        for item, score in zip(self._items, self._scores, strict=True):
            cumulative += score
            if score > 0.0 and cumulative > target:
                return item
        # Float round-off can leave the target just above the final sum.
        return next(
            item
            for item, score in zip(
                reversed(self._items), reversed(self._scores), strict=True
            )
            if score > 0.0
        )

    def reset(self) -> None:
        self._items.clear()
        self._scores.clear()
        self._total = 0.0


__all__ = ["RandomSelector"]
