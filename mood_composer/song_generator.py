"""Song assembly: melody, accompaniment, tempo and metadata.

:func:`generate_song` is the main entry point.  It draws a mood and key when
none are supplied, picks one chord progression for the whole piece and then
builds three layers from it:

``melody``
    Six to ten phrases from :func:`generate_phrase`.  Every phrase except
    the last ends on a half note so the line breathes between phrases.  A
    final mood pass rewrites all velocities and the result is truncated to
    :data:`MAX_NOTES` notes.

``bass``
    One four-beat figure per chord (a whole note, four quarters or two
    halves) on the chord root in octave two.

``chords``
    Triads on each progression degree, arpeggiated in quarter notes for
    light moods and played as half-note block tones otherwise.

The random source is consumed in a fixed order (mood, key, melody, tempo,
bass, chords, metadata) so a seeded :class:`random.Random` always yields the
same piece.

Example
-------
>>> import random
>>> piece = generate_song(random.Random(7), mood="Triumphant", key="C major")
>>> 100 <= piece.tempo <= 132
True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from . import (
    ARPEGGIO_MOODS,
    CHORD_PROGRESSIONS,
    COMPOSERS,
    FORMS,
    KEYS,
    MOODS,
    NOTE_NAMES,
    SCALES,
    parse_key,
)
from .dynamics import mood_velocities, phrase_multiplier
from .phrase_generator import generate_phrase
from .piece import Layer, Piece
from .rhythm_engine import round_up_to_bar, total_beats
from .rng import RandomSource, pick, randbelow, resolve

logger = logging.getLogger(__name__)

__all__ = [
    "MOOD_TEMPOS",
    "DEFAULT_TEMPO_RANGE",
    "MAX_NOTES",
    "MelodyResult",
    "tempo_for_mood",
    "choose_progression",
    "generate_melody",
    "generate_bass",
    "generate_chords",
    "generate_song",
]

MOOD_TEMPOS: Dict[str, Tuple[int, int]] = {
    "Melancholic": (52, 68),
    "Dreamy": (58, 76),
    "Solemn": (50, 64),
    "Tender": (64, 88),
    "Romantic": (68, 96),
    "Ethereal": (62, 86),
    "Triumphant": (100, 132),
    "Majestic": (76, 116),
    "Vibrant": (116, 144),
    "Playful": (116, 144),
    "Fierce": (132, 168),
    "Dramatic": (76, 132),
}
DEFAULT_TEMPO_RANGE = (60, 120)

# Upper bound on melody length; phrase loops are stochastic.
MAX_NOTES = 256

MIN_PHRASES = 6
MAX_PHRASES = 10

BASS_OCTAVE = 2
BASS_QUARTER_VELOCITIES = (0.55, 0.45, 0.5, 0.4)
BASS_HALF_VELOCITIES = (0.5, 0.45)
ARPEGGIO_PATTERNS = ((0, 1, 2, 1), (0, 2, 1, 2))
BLOCK_FALLOFF = (1.0, 0.9, 0.85)


@dataclass
class MelodyResult:
    """Melody layer plus the harmonic context needed by the accompaniment."""

    notes: List[str]
    durations: List[str]
    velocities: List[float]
    progression: Tuple[int, ...]
    total_beats: int
    phrase_ends: List[int] = field(default_factory=list)


def tempo_for_mood(mood: str, rng: Optional[RandomSource] = None) -> int:
    """Return a tempo in BPM drawn from the range associated with ``mood``."""

    rng = resolve(rng)
    low, high = MOOD_TEMPOS.get(mood, DEFAULT_TEMPO_RANGE)
    return low + int(rng.random() * (high - low))


def choose_progression(mode: str, rng: RandomSource) -> Tuple[int, ...]:
    """Pick one chord progression for ``mode``."""

    return pick(rng, CHORD_PROGRESSIONS.get(mode, CHORD_PROGRESSIONS["major"]))


def generate_melody(key: str, mood: str, rng: Optional[RandomSource] = None) -> MelodyResult:
    """Concatenate several phrases into the melody of a song.

    @param key (str): Key string shared by every phrase.
    @param mood (str): Mood controlling phrase shape and dynamics.
    @param rng (RandomSource|None): Random source.
    @returns MelodyResult: Notes, durations and velocities along with the
        chosen progression and the bar-rounded beat length.
    """

    rng = resolve(rng)
    _root, mode = parse_key(key)
    progression = choose_progression(mode, rng)
    phrase_count = MIN_PHRASES + randbelow(rng, MAX_PHRASES - MIN_PHRASES + 1)

    notes: List[str] = []
    durations: List[str] = []
    velocities: List[float] = []
    phrase_ends: List[int] = []

    for i in range(phrase_count):
        phrase = generate_phrase(key, mood, progression, i, rng)
        notes.extend(phrase.notes)
        durations.extend(phrase.durations)
        multiplier = phrase_multiplier(i, phrase_count)
        velocities.extend(min(1.0, v * multiplier) for v in phrase.velocities)
        if i < phrase_count - 1 and durations:
            durations[-1] = "2n"
        phrase_ends.append(len(notes) - 1)

    beats = round_up_to_bar(total_beats(durations))

    # The song level pass replaces the phrase level values.
    velocities = mood_velocities(len(velocities), mood, rng)

    if len(notes) > MAX_NOTES:
        logger.debug("Truncating melody from %d to %d notes", len(notes), MAX_NOTES)
        notes = notes[:MAX_NOTES]
        durations = durations[:MAX_NOTES]
        velocities = velocities[:MAX_NOTES]
        phrase_ends = [end for end in phrase_ends if end < MAX_NOTES]

    return MelodyResult(notes, durations, velocities, progression, beats, phrase_ends)


def _chord_tone(root: int, intervals: Sequence[int], degree: int, octave: int) -> str:
    return f"{NOTE_NAMES[(root + intervals[degree % len(intervals)]) % 12]}{octave}"


def generate_bass(
    key: str,
    beats: float,
    progression: Sequence[int],
    rng: Optional[RandomSource] = None,
) -> Layer:
    """Return a bass layer covering ``beats`` beats of ``progression``.

    Each chord lasts one bar.  Two draws are taken per bar: the first picks
    a whole note (40%), otherwise the second picks four quarters (30%) and
    anything else becomes two half notes.
    """

    rng = resolve(rng)
    if not progression:
        raise ValueError("progression must not be empty")
    root, mode = parse_key(key)
    intervals = SCALES[mode]

    notes: List[str] = []
    durations: List[str] = []
    velocities: List[float] = []
    beat = 0
    index = 0
    while beat < beats:
        note = _chord_tone(root, intervals, progression[index % len(progression)], BASS_OCTAVE)
        use_whole = rng.random() < 0.4
        use_quarter = rng.random() < 0.3
        if use_whole:
            notes.append(note)
            durations.append("1n")
            velocities.append(0.5 + rng.random() * 0.1)
        elif use_quarter:
            notes.extend([note] * 4)
            durations.extend(["4n"] * 4)
            velocities.extend(BASS_QUARTER_VELOCITIES)
        else:
            notes.extend([note] * 2)
            durations.extend(["2n"] * 2)
            velocities.extend(BASS_HALF_VELOCITIES)
        beat += 4
        index += 1

    return Layer(notes, durations, velocities)


def generate_chords(
    key: str,
    beats: float,
    progression: Sequence[int],
    mood: str,
    rng: Optional[RandomSource] = None,
) -> Layer:
    """Return the chord layer for ``progression``.

    Triads are built from the chord degree, the third above and the fifth
    above with the root in octave three and the upper tones in octave four.
    Arpeggio moods walk a four step pattern in quarter notes and stop
    exactly at ``beats``.  Other moods append the three tones as half notes
    and advance two beats per chord.
    """

    rng = resolve(rng)
    if not progression:
        raise ValueError("progression must not be empty")
    root, mode = parse_key(key)
    intervals = SCALES[mode]
    arpeggiate = mood in ARPEGGIO_MOODS

    notes: List[str] = []
    durations: List[str] = []
    velocities: List[float] = []
    beat = 0
    index = 0
    while beat < beats:
        degree = progression[index % len(progression)] % len(intervals)
        chord = (
            _chord_tone(root, intervals, degree, 3),
            _chord_tone(root, intervals, degree + 2, 4),
            _chord_tone(root, intervals, degree + 4, 4),
        )
        velocity = 0.25 + rng.random() * 0.08
        if arpeggiate:
            pattern = ARPEGGIO_PATTERNS[0] if rng.random() < 0.5 else ARPEGGIO_PATTERNS[1]
            for step in pattern:
                if beat >= beats:
                    break
                notes.append(chord[step])
                durations.append("4n")
                velocities.append(velocity)
                beat += 1
        else:
            notes.extend(chord)
            durations.extend(["2n"] * 3)
            velocities.extend(velocity * factor for factor in BLOCK_FALLOFF)
            beat += 2
        index += 1

    return Layer(notes, durations, velocities)


def generate_song(
    rng: Optional[RandomSource] = None,
    mood: Optional[str] = None,
    key: Optional[str] = None,
) -> Piece:
    """Compose a complete :class:`Piece`.

    @param rng (RandomSource|None): Random source; pass ``random.Random(seed)``
        for reproducible output.
    @param mood (str|None): Mood name. Drawn from :data:`MOODS` when omitted.
    @param key (str|None): Key string. Drawn from :data:`KEYS` when omitted.
    @returns Piece: Generated piece flagged ``generated=True``.
    """

    rng = resolve(rng)
    if mood is None:
        mood = pick(rng, MOODS)
    if key is None:
        key = pick(rng, KEYS)

    melody = generate_melody(key, mood, rng)
    tempo = tempo_for_mood(mood, rng)
    bass = generate_bass(key, melody.total_beats, melody.progression, rng)
    chords = generate_chords(key, melody.total_beats, melody.progression, mood, rng)

    title = f"{pick(rng, FORMS)} No. {randbelow(rng, 30) + 1}"
    subtitle = f"Op. {randbelow(rng, 130) + 1}"
    composer = pick(rng, COMPOSERS)
    year = 1600 + randbelow(rng, 300)

    logger.debug(
        "Generated %s in %s (%s) at %d BPM with %d melody notes",
        title,
        key,
        mood,
        tempo,
        len(melody.notes),
    )

    return Piece(
        title=title,
        subtitle=subtitle,
        composer=composer,
        year=year,
        key=key,
        tempo=tempo,
        mood=mood,
        melody=Layer(melody.notes, melody.durations, melody.velocities),
        bass=bass,
        chords=chords,
        generated=True,
        progression=melody.progression,
    )
