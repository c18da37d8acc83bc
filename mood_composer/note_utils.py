"""Helpers for reading note symbols.

A note symbol is either a pitch name followed by an octave (``C#4``,
``Eb3``) or a rest marker (``R`` or any symbol starting with ``R``).  The
functions here are shared by the scheduler, the MIDI exporter and the tests
so every part of the package agrees on what counts as a rest and how a pitch
maps to a MIDI number.

Example
-------
>>> from mood_composer.note_utils import note_to_midi
>>> note_to_midi("C4")
60
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Tuple

from . import NOTE_NAMES, ROOT_MAP

__all__ = ["is_rest", "split_note", "pitch_class", "note_to_midi", "midi_to_note"]

# Spellings outside ``ROOT_MAP`` that may still appear in hand-written pieces.
_EXTRA_SPELLINGS = {"Fb": 4, "E#": 5, "Cb": 11, "B#": 0}

_NOTE_RE = re.compile(r"([A-Ga-g][#b]?)(-?\d+)")


def is_rest(note: str) -> bool:
    """Return ``True`` when ``note`` is a rest marker."""

    return note == "R" or note.startswith("R")


@lru_cache(maxsize=None)
def split_note(note: str) -> Tuple[str, int]:
    """Return ``(pitch_name, octave)`` for ``note``.

    Raises
    ------
    ValueError
        If ``note`` is not a pitch name followed by an integer octave.
    """

    match = _NOTE_RE.fullmatch(note)
    if not match:
        logging.error("Invalid note format: %s", note)
        raise ValueError(f"Invalid note format: {note}")
    name, octave = match.groups()
    return name[0].upper() + name[1:], int(octave)


def pitch_class(note: str) -> int:
    """Return the semitone (``0-11``) of ``note`` above C."""

    name, _octave = split_note(note)
    if name in ROOT_MAP:
        return ROOT_MAP[name]
    if name in _EXTRA_SPELLINGS:
        return _EXTRA_SPELLINGS[name]
    logging.error("Unknown note name: %s", name)
    raise ValueError(f"Unknown note name: {name}")


@lru_cache(maxsize=None)
def note_to_midi(note: str) -> int:
    """Convert a note symbol such as ``C#4`` into a MIDI number.

    Raises
    ------
    ValueError
        If ``note`` is malformed, is a rest, or lies outside ``0-127``.
    """

    if is_rest(note):
        raise ValueError(f"Rests have no MIDI number: {note}")
    _name, octave = split_note(note)
    # MIDI octave numbers are offset by one relative to scientific pitch
    # notation, hence the ``+ 1`` adjustment.
    midi_val = pitch_class(note) + (octave + 1) * 12
    if not 0 <= midi_val <= 127:
        logging.error("MIDI value out of range: %s -> %d", note, midi_val)
        raise ValueError(
            f"Computed MIDI value {midi_val} out of range 0-127 for note {note}"
        )
    return midi_val


def midi_to_note(midi_note: int) -> str:
    """Convert a MIDI number into a note symbol using :data:`NOTE_NAMES`.

    >>> midi_to_note(63)
    'Eb4'
    """

    if not 0 <= midi_note <= 127:
        raise ValueError(f"MIDI note {midi_note} out of range 0-127")
    return f"{NOTE_NAMES[midi_note % 12]}{midi_note // 12 - 1}"
