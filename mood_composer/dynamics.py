"""Velocity shaping and timing humanization.

Dynamics are applied in layers.  While a phrase is generated each note gets
a velocity from :func:`phrase_velocity`: a per-mood base level, an accent on
every fourth note and, inside melodic patterns, a gentle arch across the
phrase.  Once the whole song is assembled :func:`mood_velocities` overwrites
those values with a second mood table so the absolute level of the piece is
normalised.  The phrase pass still matters because it consumes random draws
and shapes the relative contour seen by any caller inspecting phrases.

At playback time :func:`humanize_offset` nudges note onsets by a few
milliseconds and delays every second note slightly (swing) so the result
does not sound quantised.  :func:`velocity_curve` provides velocities for
layers that were written without any.
"""

from __future__ import annotations

import math
from typing import Dict, List, NamedTuple

from .rng import RandomSource

__all__ = [
    "MoodDynamics",
    "PHRASE_BASE_VELOCITY",
    "SONG_DYNAMICS",
    "PLAYBACK_DYNAMICS",
    "phrase_base_velocity",
    "phrase_velocity",
    "phrase_multiplier",
    "mood_velocities",
    "velocity_curve",
    "humanize_offset",
]


class MoodDynamics(NamedTuple):
    """Base level, random spread and accent strength for a mood."""

    base: float
    variance: float
    accent: float


# Phrase-level base velocity per mood.
PHRASE_BASE_VELOCITY: Dict[str, float] = {
    "Melancholic": 0.45,
    "Dreamy": 0.35,
    "Solemn": 0.5,
    "Tender": 0.5,
    "Romantic": 0.55,
    "Ethereal": 0.35,
    "Triumphant": 0.7,
    "Majestic": 0.65,
    "Vibrant": 0.6,
    "Playful": 0.6,
    "Fierce": 0.75,
    "Dramatic": 0.6,
}
DEFAULT_PHRASE_VELOCITY = 0.5

# Song-level pass applied after all phrases are joined.
SONG_DYNAMICS: Dict[str, MoodDynamics] = {
    "Melancholic": MoodDynamics(0.4, 0.1, 0.1),
    "Dreamy": MoodDynamics(0.35, 0.08, 0.08),
    "Solemn": MoodDynamics(0.45, 0.1, 0.1),
    "Tender": MoodDynamics(0.5, 0.12, 0.12),
    "Romantic": MoodDynamics(0.5, 0.15, 0.15),
    "Ethereal": MoodDynamics(0.35, 0.08, 0.08),
    "Triumphant": MoodDynamics(0.65, 0.15, 0.2),
    "Majestic": MoodDynamics(0.6, 0.12, 0.15),
    "Vibrant": MoodDynamics(0.6, 0.15, 0.15),
    "Playful": MoodDynamics(0.55, 0.15, 0.15),
    "Fierce": MoodDynamics(0.7, 0.15, 0.2),
    "Dramatic": MoodDynamics(0.55, 0.2, 0.25),
}
DEFAULT_SONG_DYNAMICS = MoodDynamics(0.5, 0.12, 0.12)

# Curve used by the player for layers that carry no velocities.
PLAYBACK_DYNAMICS: Dict[str, MoodDynamics] = {
    "Melancholic": MoodDynamics(0.4, 0.15, 0.15),
    "Dreamy": MoodDynamics(0.35, 0.1, 0.1),
    "Solemn": MoodDynamics(0.45, 0.12, 0.12),
    "Tender": MoodDynamics(0.5, 0.15, 0.15),
    "Romantic": MoodDynamics(0.5, 0.2, 0.2),
    "Ethereal": MoodDynamics(0.35, 0.1, 0.1),
    "Triumphant": MoodDynamics(0.65, 0.2, 0.25),
    "Majestic": MoodDynamics(0.6, 0.18, 0.22),
    "Vibrant": MoodDynamics(0.6, 0.2, 0.2),
    "Playful": MoodDynamics(0.55, 0.22, 0.2),
    "Fierce": MoodDynamics(0.7, 0.2, 0.25),
    "Dramatic": MoodDynamics(0.55, 0.25, 0.3),
}
DEFAULT_PLAYBACK_DYNAMICS = MoodDynamics(0.5, 0.15, 0.15)

BEAT_ACCENT = 0.15
PHRASE_ARCH = 0.1
PHRASE_JITTER = 0.1
MIN_SONG_VELOCITY = 0.15
MIN_PLAYBACK_VELOCITY = 0.1

# Timing humanization in seconds.
TIMING_JITTER = 0.015
SWING = 0.008


def phrase_base_velocity(mood: str) -> float:
    """Return the phrase-level base velocity for ``mood``."""

    return PHRASE_BASE_VELOCITY.get(mood, DEFAULT_PHRASE_VELOCITY)


def phrase_velocity(
    base: float,
    index: int,
    rng: RandomSource,
    *,
    progress: float | None = None,
) -> float:
    """Return the velocity for the ``index``-th note of a phrase.

    ``progress`` is the note's position in the phrase as a fraction of the
    target length.  When supplied (pattern notes) a sine arch peaking at the
    middle of the phrase is added.
    """

    accent = BEAT_ACCENT if index % 4 == 0 else 0.0
    arch = math.sin(progress * math.pi) * PHRASE_ARCH if progress is not None else 0.0
    jitter = (rng.random() - 0.5) * PHRASE_JITTER
    return min(1.0, base + accent + arch + jitter)


def phrase_multiplier(index: int, count: int) -> float:
    """Return the loudness multiplier for phrase ``index`` of ``count``.

    The closing phrase swells by ten percent and the second phrase by five.
    """

    if index == count - 1:
        return 1.1
    if index == 1:
        return 1.05
    return 1.0


def mood_velocities(count: int, mood: str, rng: RandomSource) -> List[float]:
    """Return ``count`` velocities following the song-level ``mood`` table."""

    params = SONG_DYNAMICS.get(mood, DEFAULT_SONG_DYNAMICS)
    velocities = []
    for i in range(count):
        accent = params.accent if i % 4 == 0 else 0.0
        spread = (rng.random() - 0.5) * params.variance
        velocities.append(max(MIN_SONG_VELOCITY, min(1.0, params.base + accent + spread)))
    return velocities


def velocity_curve(mood: str, length: int, rng: RandomSource) -> List[float]:
    """Return a fallback velocity curve for a layer of ``length`` notes.

    Downbeats (every fourth note) receive the mood's accent and every eighth
    note after the first gets an additional half accent to outline phrases.
    """

    params = PLAYBACK_DYNAMICS.get(mood, DEFAULT_PLAYBACK_DYNAMICS)
    velocities = []
    for i in range(length):
        beat_accent = params.accent if i % 4 == 0 else 0.0
        phrase_accent = params.accent * 0.5 if i % 8 == 0 and i > 0 else 0.0
        spread = (rng.random() - 0.5) * params.variance
        vel = params.base + beat_accent + phrase_accent + spread
        velocities.append(max(MIN_PLAYBACK_VELOCITY, min(1.0, vel)))
    return velocities


def humanize_offset(index: int, rng: RandomSource) -> float:
    """Return the onset offset in seconds for the ``index``-th note.

    Each onset moves by up to ``TIMING_JITTER`` seconds in either direction
    and odd-indexed notes are additionally delayed by ``SWING``.
    """

    jitter = (rng.random() - 0.5) * 2 * TIMING_JITTER
    swing = SWING if index % 2 == 1 else 0.0
    return jitter + swing
