#!/usr/bin/env python3
"""Mood Composer library.

This package procedurally composes short pieces (melody, bass and chords)
from a mood and key seed and schedules them for playback as timed note
events.  A typical workflow is to call :func:`generate_song` to obtain an
immutable :class:`Piece`, then hand it to :class:`Player` which converts each
layer into humanized, looping trigger events on a shared transport.  The
same piece can be written to disk with :func:`create_midi_file` or saved as
JSON via :meth:`Piece.to_dict`.

Underlying Algorithm
--------------------
Melodies are built phrase by phrase.  Each phrase owns a small *melody
state* (scale degree, octave offset and the direction of recent movement).
Every step either moves by a weighted interval, strongly preferring steps
and small leaps, or walks one of a handful of pre-authored melodic patterns
such as an arpeggio or a descending scale.  A short run in one direction is
likely to continue, which gives lines a sense of purpose without letting
them climb forever.  Phrases always close on the tonic or the dominant with
a half note so each one resolves.

Algorithm Pseudocode
--------------------
The following outlines the loop executed by :func:`generate_phrase`::

    state = MelodyState()
    while notes < target and beats < budget * 4:
        if random() < 0.4 and enough notes remain:
            walk_pattern(state)            # several notes at once
        else:
            interval = next_interval(state)
            apply_interval(state, interval)
        choose duration and velocity for each new note
    replace the final note with a cadence on degree 0 or 4

:func:`generate_song` strings six to ten phrases together, derives bass and
chord layers from the same chord progression and applies a final mood based
velocity pass so every layer shares one harmonic skeleton.

Features include:
- Weighted interval selection with direction memory.
- Mood driven tempo, dynamics and accompaniment style.
- Deterministic output when an explicit random source is injected.
- Heap ordered transport with per-layer looping and atomic cancellation.
- Playback sessions with a small state machine and a capped note event log.
- MIDI export through ``mido`` and optional FluidSynth playback.
"""

__version__ = "0.1.0"

# ---------------------------------------------------------------
# Modification Summary
# ---------------------------------------------------------------
# * Scale tables now use a fixed twelve-entry note name table indexed by
#   semitone so every key renders with the same spelling (``Eb``, ``Ab``,
#   ``Bb`` for the black keys).
# * ``parse_key`` degrades gracefully: an unknown root falls back to ``C``
#   and any mode other than ``minor`` is treated as major.  Generation never
#   aborts because of a malformed key string.
# * ``degree_to_note`` accepts negative degrees and carries whole octaves so
#   callers may pass un-normalised degrees directly.
# * Interval weights, melodic patterns and chord progressions are stored as
#   read-only tuples so no generation call can mutate shared tables.
# * Settings persistence follows the ``MOOD_COMPOSER_SETTINGS_FILE``
#   environment variable so tests and alternate profiles can redirect it.
# ---------------------------------------------------------------

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Tuple

# Default path for storing user preferences.
# The file lives in the user's home directory so settings persist
# between runs of the application.
env_path = os.environ.get("MOOD_COMPOSER_SETTINGS_FILE")
if env_path:
    DEFAULT_SETTINGS_FILE = Path(env_path).expanduser()
else:
    DEFAULT_SETTINGS_FILE = Path.home() / ".mood_composer_settings.json"


def load_settings(path: Path = DEFAULT_SETTINGS_FILE) -> dict:
    """Load saved user settings from ``path`` if it exists.

    @param path (Path): Location of the settings file.
    @returns dict: Loaded settings or an empty dictionary when unavailable.
    """
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            if isinstance(data, dict):
                return data
            logging.error("Settings file %s does not contain an object", path)
        except Exception as exc:  # pragma: no cover - log error but return defaults
            logging.error(f"Could not load settings: {exc}")
    return {}


def save_settings(settings: dict, path: Path = DEFAULT_SETTINGS_FILE) -> None:
    """Save user ``settings`` to ``path`` as JSON.

    @param settings (dict): Options to be persisted.
    @param path (Path): Destination file path.
    @returns None: Function does not return a value.
    """
    # Any IOError is logged but ignored so failing to save
    # preferences never prevents composition or playback.
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(settings, fh, indent=2)
    except Exception as exc:  # pragma: no cover - log error only
        logging.error(f"Could not save settings: {exc}")


# Pitch names indexed by semitone above C.  Black keys use the spelling most
# common in the generated keys so rendered notes stay readable.
NOTE_NAMES: Tuple[str, ...] = (
    "C", "C#", "D", "Eb", "E", "F", "F#", "G", "Ab", "A", "Bb", "B",
)

# ``ROOT_MAP`` maps both sharp and flat spellings of a key root to its
# semitone offset so ``"Eb major"`` and ``"D# major"`` describe the same key.
ROOT_MAP: Dict[str, int] = {
    "C": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
}

# Semitone offsets of each scale degree from the root.
SCALES: Dict[str, Tuple[int, ...]] = {
    "major": (0, 2, 4, 5, 7, 9, 11),
    "minor": (0, 2, 3, 5, 7, 8, 10),
}

# Keys offered when a song is generated without an explicit key.
KEYS: List[str] = [
    "C major",
    "D major",
    "E major",
    "F major",
    "G major",
    "A major",
    "B major",
    "C minor",
    "D minor",
    "E minor",
    "F minor",
    "G minor",
    "A minor",
]

MOODS: List[str] = [
    "Triumphant",
    "Melancholic",
    "Playful",
    "Dramatic",
    "Dreamy",
    "Ethereal",
    "Romantic",
    "Majestic",
    "Solemn",
    "Vibrant",
    "Tender",
    "Fierce",
]

# Mood groups steering phrase length, cadence rhythm and accompaniment.
SLOW_MOODS = frozenset({"Melancholic", "Dreamy", "Solemn"})
ENERGETIC_MOODS = frozenset({"Playful", "Fierce", "Triumphant"})
ARPEGGIO_MOODS = frozenset({"Playful", "Dreamy", "Ethereal"})

FORMS: List[str] = [
    "Symphony",
    "Concerto",
    "Sonata",
    "Prelude",
    "Nocturne",
    "Waltz",
    "Etude",
    "Rhapsody",
    "Suite",
    "Fantasy",
    "March",
    "Overture",
]

COMPOSERS: List[str] = [
    "Bach",
    "Mozart",
    "Beethoven",
    "Chopin",
    "Debussy",
    "Tchaikovsky",
    "Vivaldi",
    "Handel",
    "Brahms",
    "Schumann",
    "Liszt",
    "Wagner",
    "Mahler",
]

# Chord progressions encoded as scale degrees (0 = I/i).  One progression is
# picked per song and shared by the melody, bass and chord layers.
CHORD_PROGRESSIONS: Dict[str, Tuple[Tuple[int, ...], ...]] = {
    "major": (
        (0, 3, 4),  # I - IV - V
        (0, 4, 3),  # I - V - IV
        (0, 3, 0, 4),  # I - IV - I - V
        (0, 2, 3, 0),  # I - iii - IV - I
        (0, 4, 0, 3),  # I - V - I - IV
        (0, 5, 1, 4),  # I - vi - ii - V
    ),
    "minor": (
        (0, 6, 4),  # i - VI - iv
        (0, 4, 6),  # i - iv - VI
        (0, 5, 4, 0),  # i - v - iv - i
        (0, 6, 4, 5),  # i - VI - iv - v
        (0, 4, 0, 5),  # i - iv - i - v
    ),
}

# ``INTERVAL_WEIGHTS`` encodes the relative likelihood of moving by a given
# number of scale degrees.  Steps are favoured, the fifth gets a small bump
# over the fourth and the octave over the seventh.
INTERVAL_WEIGHTS: Dict[int, int] = {
    0: 12,  # repeated note
    1: 28,  # step
    2: 22,  # third
    3: 10,  # fourth
    4: 14,  # fifth
    5: 6,  # sixth
    6: 3,  # seventh
    7: 5,  # octave
}

# Number of consecutive moves in one direction after which the melody stops
# being nudged to continue that way.
DIRECTION_MEMORY = 3

# Pre-authored melodic cells.  Values are degree offsets applied one after
# another from the current position.
MELODIC_PATTERNS: Dict[str, Tuple[Tuple[int, ...], ...]] = {
    "major": (
        (0, 2, 4, 7),  # arpeggio up
        (0, 2, 4, 2),  # zigzag up
        (0, 1, 2, 3, 4),  # scale up
        (0, 4, 2, 1),  # zigzag down
        (7, 4, 2, 0),  # arpeggio down
        (4, 2, 1, 0),  # scale down
        (7, 6, 4, 2),  # thirds down
        (0, 1, 0, 2, 0),  # turn
        (0, 2, 1, 2),  # neighbour tone
        (4, 5, 4, 3),  # upper neighbour
    ),
    "minor": (
        (0, 2, 3, 7),  # minor arpeggio up
        (0, 2, 3, 2),  # minor zigzag up
        (0, 1, 2, 3),  # natural minor up
        (7, 3, 2, 0),  # minor arpeggio down
        (3, 2, 1, 0),  # minor scale down
        (0, 2, 1, 2),  # minor neighbour
    ),
}

# Octave added to every rendered melody note.  Degree 0 at octave offset 0
# therefore sounds in the third octave (``C3`` in C major).
BASE_OCTAVE = 3


def parse_key(key: str) -> Tuple[int, str]:
    """Return ``(root_semitone, mode)`` for a key string such as ``"C# minor"``.

    Unknown roots fall back to ``C`` and anything other than ``minor`` is
    treated as major so malformed input never interrupts generation.
    """

    parts = key.split()
    root_name = parts[0] if parts else ""
    mode = "minor" if len(parts) > 1 and parts[1].lower() == "minor" else "major"
    root = ROOT_MAP.get(root_name)
    if root is None:
        logging.warning("Unknown key root %r; falling back to C", root_name)
        root = 0
    return root, mode


def scale_length(mode: str) -> int:
    """Return the number of degrees in ``mode`` (major when unknown)."""

    return len(SCALES.get(mode, SCALES["major"]))


def degree_to_note(degree: int, octave: int, root: int, mode: str) -> str:
    """Render a scale ``degree`` at ``octave`` offset as a note symbol.

    @param degree (int): Zero-based scale degree. Values outside the scale
        wrap around and carry whole octaves, so ``-1`` is the leading tone an
        octave lower.
    @param octave (int): Octave offset relative to :data:`BASE_OCTAVE`.
    @param root (int): Root semitone in ``0-11``.
    @param mode (str): ``"major"`` or ``"minor"``.
    @returns str: Note symbol such as ``"Eb4"``.
    """

    intervals = SCALES.get(mode, SCALES["major"])
    octave_adjust, normalised = divmod(degree, len(intervals))
    semitone = (root + intervals[normalised]) % 12
    return f"{NOTE_NAMES[semitone]}{octave + octave_adjust + BASE_OCTAVE}"


from .rng import RandomSource, SequenceRandom  # noqa: E402,F401
from .note_utils import is_rest, note_to_midi, midi_to_note, pitch_class  # noqa: E402,F401
from .rhythm_engine import (  # noqa: E402,F401
    DURATION_BEATS,
    beats_for_duration,
    duration_seconds,
    group_into_measures,
)
from .piece import Layer, Piece, slice_piece  # noqa: E402,F401
from .melody_state import MelodyState, next_interval  # noqa: E402,F401
from .phrase_generator import Phrase, generate_phrase  # noqa: E402,F401
from .song_generator import (  # noqa: E402,F401
    generate_bass,
    generate_chords,
    generate_melody,
    generate_song,
    tempo_for_mood,
)
from .scheduler import Trigger, schedule_layer, piece_duration  # noqa: E402,F401
from .transport import Transport, get_transport  # noqa: E402,F401
from .playback import (  # noqa: E402,F401
    InstrumentLoadError,
    NoteEvent,
    PlaybackError,
    PlaybackState,
    Player,
)
from .midi_io import create_midi_file  # noqa: E402,F401


def run_cli():
    from .cli import run_cli as _run_cli
    _run_cli()


def main():
    from .cli import main as _main
    _main()


if __name__ == "__main__":
    main()
