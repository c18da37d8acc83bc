"""Scale-degree cursor driving melody generation.

A :class:`MelodyState` remembers where the melody currently sits (scale
degree and octave offset) and how it has been moving (last direction and how
many consecutive moves went that way).  Each phrase starts a fresh state at
degree ``0``, octave ``0``.

Movement comes in two flavours:

``next_interval`` + ``apply_interval``
    Draw one signed interval from :data:`mood_composer.INTERVAL_WEIGHTS` and
    move by it.  Small steps dominate, and while a direction has been held
    for fewer than :data:`mood_composer.DIRECTION_MEMORY` moves there is a
    70% chance that intervals reversing it are excluded.

``walk_pattern``
    Apply a pre-authored cell of degree offsets one note at a time, yielding
    a short figure such as an arpeggio.

Both paths normalise the degree into the scale and carry octaves, with the
octave offset hard-limited to ``[-1, 1]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from . import (
    DIRECTION_MEMORY,
    INTERVAL_WEIGHTS,
    MELODIC_PATTERNS,
    degree_to_note,
)
from .rng import RandomSource, pick

__all__ = [
    "MelodyState",
    "MIN_OCTAVE_OFFSET",
    "MAX_OCTAVE_OFFSET",
    "CONTINUE_DIRECTION_PROBABILITY",
    "candidate_intervals",
    "weighted_choice",
    "next_interval",
    "normalise",
    "apply_interval",
    "walk_pattern",
    "choose_pattern",
]

MIN_OCTAVE_OFFSET = -1
MAX_OCTAVE_OFFSET = 1
CONTINUE_DIRECTION_PROBABILITY = 0.7


@dataclass
class MelodyState:
    """Mutable cursor owned by a single phrase."""

    degree: int = 0
    octave: int = 0
    last_direction: int = 0
    direction_count: int = 0


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def candidate_intervals() -> List[Tuple[int, float]]:
    """Return every signed interval with its weight.

    Each magnitude's weight is split evenly between the upward and downward
    interval so the distribution of magnitudes matches the weight table
    exactly while both directions remain equally likely.
    """

    candidates: List[Tuple[int, float]] = []
    for magnitude, weight in sorted(INTERVAL_WEIGHTS.items()):
        if magnitude == 0:
            candidates.append((0, float(weight)))
            continue
        candidates.append((-magnitude, weight / 2))
        candidates.append((magnitude, weight / 2))
    candidates.sort(key=lambda pair: pair[0])
    return candidates


_CANDIDATES = tuple(candidate_intervals())


def weighted_choice(choices: Sequence[Tuple[int, float]], rng: RandomSource) -> int:
    """Return one value from ``(value, weight)`` pairs.

    A single draw is scaled by the total weight and walked through the
    cumulative weights, so fixed random sequences select predictable values.
    """

    if not choices:
        raise ValueError("choices must not be empty")
    total = sum(weight for _, weight in choices)
    remaining = rng.random() * total
    for value, weight in choices:
        remaining -= weight
        if remaining <= 0:
            return value
    return choices[-1][0]


def next_interval(state: MelodyState, scale_length: int, rng: RandomSource) -> int:
    """Return the signed number of degrees the melody moves next.

    Candidates that would leave the window ``[-2, scale_length + 1]`` are
    dropped.  While the current direction has been held for fewer than
    :data:`DIRECTION_MEMORY` moves, intervals reversing it are removed with
    probability :data:`CONTINUE_DIRECTION_PROBABILITY`.  If nothing survives
    the filters the full candidate set is used instead.
    """

    continue_direction = (
        state.last_direction != 0
        and 0 < state.direction_count < DIRECTION_MEMORY
        and rng.random() < CONTINUE_DIRECTION_PROBABILITY
    )

    valid = []
    for interval, weight in _CANDIDATES:
        direction = _sign(interval)
        if continue_direction and direction != 0 and direction != state.last_direction:
            continue
        if not -2 <= state.degree + interval <= scale_length + 1:
            continue
        valid.append((interval, weight))

    return weighted_choice(valid or _CANDIDATES, rng)


def normalise(state: MelodyState, scale_length: int) -> None:
    """Fold ``state.degree`` into the scale, carrying and clamping octaves.

    When the octave offset would leave ``[-1, 1]`` it is pinned to the limit
    and the degree moves to the matching edge of the scale (top degree when
    clamped high, degree ``0`` when clamped low).
    """

    carry, state.degree = divmod(state.degree, scale_length)
    state.octave += carry
    if state.octave > MAX_OCTAVE_OFFSET:
        state.octave = MAX_OCTAVE_OFFSET
        state.degree = scale_length - 1
    elif state.octave < MIN_OCTAVE_OFFSET:
        state.octave = MIN_OCTAVE_OFFSET
        state.degree = 0


def apply_interval(state: MelodyState, interval: int, scale_length: int) -> None:
    """Move ``state`` by ``interval`` degrees and update direction memory."""

    state.degree += interval
    direction = _sign(interval)
    if direction == state.last_direction:
        state.direction_count += 1
    else:
        state.direction_count = 1
        state.last_direction = direction
    normalise(state, scale_length)


def walk_pattern(
    state: MelodyState,
    pattern: Sequence[int],
    root: int,
    mode: str,
    scale_length: int,
) -> List[str]:
    """Apply each offset of ``pattern`` in turn and return the notes reached.

    Offsets accumulate: ``(0, 2, 4)`` from degree ``0`` visits degrees ``0``,
    ``2`` and ``6``.  Direction memory is left untouched.
    """

    notes = []
    for offset in pattern:
        state.degree += offset
        normalise(state, scale_length)
        notes.append(degree_to_note(state.degree, state.octave, root, mode))
    return notes


def choose_pattern(mode: str, rng: RandomSource) -> Tuple[int, ...]:
    """Return one of the melodic patterns for ``mode``."""

    return pick(rng, MELODIC_PATTERNS.get(mode, MELODIC_PATTERNS["major"]))
