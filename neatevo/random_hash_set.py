"""Ordered gene container with O(1) membership and random draws."""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Iterator
from random import Random
from typing import Generic, TypeVar

from .genes import Gene

G = TypeVar("G", bound=Gene)


class RandomHashSet(Generic[G]):
    """Position-addressable set of genes, unique by innovation number."""

    __slots__ = ("_items", "_index")

    def __init__(self, genes: Iterable[G] = ()) -> None:
        self._items: list[G] = []
        self._index: dict[int, G] = {}
        for gene in genes:
            self.add(gene)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[G]:
        return iter(self._items)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Gene):
            return item.innovation_number in self._index
        if isinstance(item, int):
            return item in self._index
        return False

    def __repr__(self) -> str:
        numbers = [gene.innovation_number for gene in self._items]
        return f"RandomHashSet({numbers})"

    def contains(self, item: G | int) -> bool:
        return item in self

    def add(self, gene: G) -> bool:
        """Append ``gene`` unless one with the same innovation number exists."""
        if gene.innovation_number in self._index:
            return False
        self._items.append(gene)
        self._index[gene.innovation_number] = gene
        return True

    def add_sorted(self, gene: G) -> bool:
        """Insert ``gene`` before the first gene with a larger innovation number."""
        if gene.innovation_number in self._index:
            return False
        position = bisect_right(
            self._items,
            gene.innovation_number,
            key=lambda item: item.innovation_number,
        )
        self._items.insert(position, gene)
        self._index[gene.innovation_number] = gene
        return True

    def get(self, index: int) -> G | None:
        """Return the gene at ``index`` or ``None`` when out of range."""
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def by_innovation(self, innovation_number: int) -> G | None:
        return self._index.get(innovation_number)

    def remove(self, item: G | int) -> G | None:
        """Remove a gene given either the gene or its position.

        Unknown genes and invalid positions are ignored.
        """
        if isinstance(item, Gene):
            stored = self._index.pop(item.innovation_number, None)
            if stored is None:
                return None
            position = next(
                i for i, gene in enumerate(self._items) if gene is stored
            )
            del self._items[position]
            return stored
        if not 0 <= item < len(self._items):
            return None
        stored = self._items.pop(item)
        del self._index[stored.innovation_number]
        return stored

    def random_element(self, rng: Random) -> G | None:
        if not self._items:
            return None
        return self._items[rng.randrange(len(self._items))]

    def clear(self) -> None:
        self._items.clear()
        self._index.clear()


__all__ = ["RandomHashSet"]
