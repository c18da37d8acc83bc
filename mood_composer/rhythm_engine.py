"""Duration symbols and rhythmic helpers.

Durations are written with the compact symbols used throughout the package:
``1n`` (whole), ``2n`` (half), ``4n`` (quarter), ``8n`` (eighth) and ``16n``
(sixteenth), each optionally dotted with a trailing ``.``.  This module maps
those symbols to beat counts and real time, decides which duration a newly
generated note receives, and groups sequences into 4/4 measures.

Unknown symbols are treated as a quarter note rather than rejected so a
hand-edited piece with a typo still plays.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .rng import RandomSource

__all__ = [
    "DURATION_BEATS",
    "DEFAULT_BEATS",
    "BEATS_PER_BAR",
    "beats_for_duration",
    "duration_seconds",
    "total_beats",
    "round_up_to_bar",
    "choose_step_duration",
    "choose_pattern_duration",
    "Measure",
    "group_into_measures",
]


DURATION_BEATS: Dict[str, float] = {
    "1n": 4.0,
    "2n": 2.0,
    "2n.": 3.0,
    "4n": 1.0,
    "4n.": 1.5,
    "8n": 0.5,
    "8n.": 0.75,
    "16n": 0.25,
    "16n.": 0.375,
}

# Beat value assumed for symbols missing from :data:`DURATION_BEATS`.
DEFAULT_BEATS = 1.0

BEATS_PER_BAR = 4


def beats_for_duration(symbol: str) -> float:
    """Return the number of quarter-note beats ``symbol`` lasts."""

    return DURATION_BEATS.get(symbol, DEFAULT_BEATS)


def duration_seconds(symbol: str, tempo: float) -> float:
    """Return the length of ``symbol`` in seconds at ``tempo`` BPM."""

    if tempo <= 0:
        raise ValueError("tempo must be positive")
    return beats_for_duration(symbol) * 60.0 / tempo


def total_beats(durations: Sequence[str]) -> float:
    """Return the summed beat value of ``durations``."""

    return sum(beats_for_duration(d) for d in durations)


def round_up_to_bar(beats: float, beats_per_bar: int = BEATS_PER_BAR) -> int:
    """Round ``beats`` up to a whole number of bars, returned in beats."""

    return int(math.ceil(beats / beats_per_bar)) * beats_per_bar


def choose_step_duration(rng: RandomSource, *, near_end: bool, energetic: bool) -> str:
    """Pick the duration of a single stepwise note.

    Calm moods broaden into half notes when the phrase budget is nearly
    spent; otherwise three in ten notes are eighths and the rest quarters.
    The random source is only consulted when the half-note rule does not
    apply.
    """

    if near_end and not energetic:
        return "2n"
    return "8n" if rng.random() < 0.3 else "4n"


def choose_pattern_duration(rng: RandomSource, beat_position: float) -> str:
    """Pick the duration of a note inside a melodic pattern.

    Notes landing on a whole beat have an even chance of being a quarter;
    everything else is an eighth so patterns move quickly.
    """

    on_beat = beat_position % 1 == 0
    if on_beat and rng.random() < 0.5:
        return "4n"
    return "8n"


@dataclass
class Measure:
    """One measure of a note sequence and the index of its first note."""

    notes: List[str]
    durations: List[str]
    start_index: int


def group_into_measures(
    notes: Sequence[str],
    durations: Sequence[str],
    beats_per_measure: float = BEATS_PER_BAR,
) -> List[Measure]:
    """Split ``notes``/``durations`` into measures of ``beats_per_measure``.

    A note that would overflow the current measure starts a new one, so a
    measure may be shorter than ``beats_per_measure`` but never contains a
    note that crosses the bar line unless that note alone is longer than a
    bar.  Trailing notes form a final, possibly incomplete measure.
    """

    if len(notes) != len(durations):
        raise ValueError("notes and durations must have the same length")
    if beats_per_measure <= 0:
        raise ValueError("beats_per_measure must be positive")

    measures: List[Measure] = []
    current_notes: List[str] = []
    current_durs: List[str] = []
    current_beats = 0.0
    start = 0

    for i, (note, dur) in enumerate(zip(notes, durations)):
        beats = beats_for_duration(dur)
        if current_beats + beats > beats_per_measure and current_notes:
            measures.append(Measure(current_notes, current_durs, start))
            current_notes, current_durs, current_beats = [], [], 0.0
            start = i
        current_notes.append(note)
        current_durs.append(dur)
        current_beats += beats
        if current_beats >= beats_per_measure:
            measures.append(Measure(current_notes, current_durs, start))
            current_notes, current_durs, current_beats = [], [], 0.0
            start = i + 1

    if current_notes:
        measures.append(Measure(current_notes, current_durs, start))
    return measures
