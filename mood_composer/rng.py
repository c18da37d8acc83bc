"""Injectable random sources.

Every stochastic choice made while composing or humanizing playback is drawn
through a *random source*: any object exposing ``random()`` that returns a
float in ``[0, 1)``.  :class:`random.Random` instances and the :mod:`random`
module itself already satisfy the protocol, so production code simply passes
``random.Random(seed)`` (or nothing at all) while tests may inject a
:class:`SequenceRandom` to walk a precise path through the algorithms.

The helpers below mirror the way the generators consume randomness: values
are always derived from a single ``random()`` call so the number of draws is
predictable and fixed sequences replay identically.
"""

from __future__ import annotations

import math
import random
from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar

__all__ = [
    "RandomSource",
    "SequenceRandom",
    "resolve",
    "randbelow",
    "pick",
    "uniform",
]

T = TypeVar("T")


class RandomSource(Protocol):
    """Object producing floats uniformly distributed in ``[0, 1)``."""

    def random(self) -> float:
        """Return the next float in ``[0, 1)``."""


class SequenceRandom:
    """Random source replaying ``values`` in order and cycling at the end.

    Useful for tests that need a specific branch of the generator to be
    taken.  Values must lie in ``[0, 1)``.
    """

    def __init__(self, values: Iterable[float]) -> None:
        self.values: List[float] = list(values)
        if not self.values:
            raise ValueError("values must not be empty")
        if any(not 0.0 <= v < 1.0 for v in self.values):
            raise ValueError("values must lie in [0, 1)")
        self.calls = 0

    def random(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


def resolve(rng: Optional[RandomSource]) -> RandomSource:
    """Return ``rng`` or the module level generator when ``None``."""

    return rng if rng is not None else random


def randbelow(rng: RandomSource, n: int) -> int:
    """Return an integer in ``[0, n)`` using one draw from ``rng``."""

    if n <= 0:
        raise ValueError("n must be positive")
    # ``min`` guards against sources returning values extremely close to 1.
    return min(n - 1, int(math.floor(rng.random() * n)))


def pick(rng: RandomSource, items: Sequence[T]) -> T:
    """Return one element of ``items`` chosen with a single draw."""

    if not items:
        raise ValueError("items must not be empty")
    return items[randbelow(rng, len(items))]


def uniform(rng: RandomSource, low: float, high: float) -> float:
    """Return a float in ``[low, high)``."""

    return low + (high - low) * rng.random()
