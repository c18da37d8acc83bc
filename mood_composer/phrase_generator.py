"""Single phrase generation.

A phrase is a short run of roughly eight to seventeen notes that ends with a
cadence.  :func:`generate_phrase` owns a fresh :class:`MelodyState` and
repeatedly chooses between two kinds of movement:

* with a 40% chance, and only while at least five notes remain before the
  target, a pre-authored melodic pattern is walked and its notes appended
  (eighths and on-beat quarters, shaped by an arch-like velocity curve);
* otherwise a single weighted interval is applied, producing one note whose
  duration depends on how much of the beat budget has been used.

The loop stops once the target note count is reached or the beat budget is
exhausted.  The final note is then replaced by the tonic (70%) or the
dominant (30%) at the home octave, lengthened to a half note and played
slightly softer so every phrase audibly resolves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from . import ENERGETIC_MOODS, SLOW_MOODS, degree_to_note, parse_key, scale_length
from .dynamics import phrase_base_velocity, phrase_velocity
from .melody_state import (
    MelodyState,
    apply_interval,
    choose_pattern,
    next_interval,
    walk_pattern,
)
from .rhythm_engine import (
    beats_for_duration,
    choose_pattern_duration,
    choose_step_duration,
)
from .rng import RandomSource, randbelow, resolve

__all__ = [
    "Phrase",
    "PATTERN_PROBABILITY",
    "PATTERN_HEADROOM",
    "CADENCE_DEGREES",
    "phrase_target_notes",
    "generate_phrase",
]

PATTERN_PROBABILITY = 0.4
# Patterns are only started while more than this many notes remain.
PATTERN_HEADROOM = 4
TONIC_CADENCE_PROBABILITY = 0.7
CADENCE_DEGREES = (0, 4)
CADENCE_SOFTENING = 0.1


@dataclass
class Phrase:
    """Notes, durations and velocities of one generated phrase."""

    notes: List[str] = field(default_factory=list)
    durations: List[str] = field(default_factory=list)
    velocities: List[float] = field(default_factory=list)
    cadence_degree: Optional[int] = None

    def __len__(self) -> int:
        return len(self.notes)


def phrase_target_notes(mood: str, rng: RandomSource) -> int:
    """Return the number of notes a phrase in ``mood`` aims for."""

    if mood in SLOW_MOODS:
        return 8 + randbelow(rng, 4)
    return 10 + randbelow(rng, 8)


def generate_phrase(
    key: str,
    mood: str,
    chord_progression: Sequence[int] = (),
    phrase_index: int = 0,
    rng: Optional[RandomSource] = None,
) -> Phrase:
    """Return one phrase in ``key`` shaped by ``mood``.

    @param key (str): Key string such as ``"D minor"``. Unknown roots fall
        back to C via :func:`mood_composer.parse_key`.
    @param mood (str): Mood name. Unknown moods use default dynamics and
        phrase lengths.
    @param chord_progression (Sequence[int]): Progression shared by the song.
        It is accepted so callers can pass the harmonic context, but the
        melody itself does not follow the chords.
    @param phrase_index (int): Position of the phrase in the song.
    @param rng (RandomSource|None): Random source; the :mod:`random` module
        is used when omitted.
    @returns Phrase: Generated phrase with equal-length lists.
    """

    rng = resolve(rng)
    root, mode = parse_key(key)
    length = scale_length(mode)
    energetic = mood in ENERGETIC_MOODS

    budget_beats = (4 + randbelow(rng, 4)) * 4
    target = phrase_target_notes(mood, rng)
    base_velocity = phrase_base_velocity(mood)

    phrase = Phrase()
    state = MelodyState()
    beat = 0.0

    while len(phrase) < target and beat < budget_beats:
        use_pattern = rng.random() < PATTERN_PROBABILITY and len(phrase) < target - PATTERN_HEADROOM

        if use_pattern:
            pattern = choose_pattern(mode, rng)
            for note in walk_pattern(state, pattern, root, mode, length):
                if len(phrase) >= target:
                    break
                duration = choose_pattern_duration(rng, beat)
                index = len(phrase)
                phrase.notes.append(note)
                phrase.durations.append(duration)
                phrase.velocities.append(
                    phrase_velocity(base_velocity, index, rng, progress=index / target)
                )
                beat += beats_for_duration(duration)
        else:
            interval = next_interval(state, length, rng)
            apply_interval(state, interval, length)
            near_end = beat >= budget_beats - 2
            duration = choose_step_duration(rng, near_end=near_end, energetic=energetic)
            phrase.notes.append(degree_to_note(state.degree, state.octave, root, mode))
            phrase.durations.append(duration)
            phrase.velocities.append(phrase_velocity(base_velocity, len(phrase) - 1, rng))
            beat += beats_for_duration(duration)

    if phrase.notes:
        ending = CADENCE_DEGREES[0] if rng.random() < TONIC_CADENCE_PROBABILITY else CADENCE_DEGREES[1]
        phrase.notes[-1] = degree_to_note(ending, 0, root, mode)
        phrase.durations[-1] = "2n"
        phrase.velocities[-1] = base_velocity - CADENCE_SOFTENING
        phrase.cadence_degree = ending

    return phrase
