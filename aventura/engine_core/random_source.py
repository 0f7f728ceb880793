"""
Random Source - Injectable randomness for loot tables and puzzle variants.

Anything with a ``random() -> float`` method in [0, 1) works, including
``random.Random`` instances, so seeded runs are reproducible.
"""

from __future__ import annotations
import random
from typing import Protocol, Sequence, TypeVar, Union

T = TypeVar("T")
Number = Union[int, float]


class RandomSource(Protocol):
    def random(self) -> float: ...


def default_random_source(seed: int | None = None) -> RandomSource:
    return random.Random(seed)


def select_weighted(
    entries: Sequence[T],
    weights: Sequence[Number],
    rng: RandomSource,
) -> T | None:
    """
    Draw one entry with probability proportional to its weight.

    One uniform draw scaled by the total weight, then cumulative
    subtraction. Non-positive weights never win. Returns None when no
    entry has a positive weight.
    """
    positive = [max(weight, 0) for weight in weights]
    total = sum(positive)
    if total <= 0:
        return None

    roll = rng.random() * total
    for entry, weight in zip(entries, positive):
        if weight <= 0:
            continue
        roll -= weight
        if roll <= 0:
            return entry

    # Float residue: fall back to the last eligible entry
    for entry, weight in zip(reversed(entries), reversed(positive)):
        if weight > 0:
            return entry
    return None
