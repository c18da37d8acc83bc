"""Tests for note symbol parsing and MIDI conversion.

``note_to_midi`` must accept both sharp and flat spellings, reject rests and
malformed symbols with ``ValueError`` and refuse values outside ``0-127``.
"""

import importlib
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

note_utils = importlib.import_module("mood_composer.note_utils")
note_to_midi = note_utils.note_to_midi
midi_to_note = note_utils.midi_to_note
is_rest = note_utils.is_rest


@pytest.mark.parametrize(
    "note,expected",
    [("C4", 60), ("C#4", 61), ("Db4", 61), ("Eb4", 63), ("Fb4", 64), ("C-1", 0), ("G9", 127)],
)
def test_note_to_midi(note, expected):
    assert note_to_midi(note) == expected


@pytest.mark.parametrize("note", ["H4", "C", "4C", "C#x"])
def test_note_to_midi_rejects_malformed(note):
    with pytest.raises(ValueError):
        note_to_midi(note)


def test_note_to_midi_rejects_out_of_range():
    with pytest.raises(ValueError):
        note_to_midi("Ab9")


def test_rests():
    """Rest markers are ``R`` or anything starting with ``R``."""
    assert is_rest("R")
    assert is_rest("Rest")
    assert not is_rest("C4")
    with pytest.raises(ValueError):
        note_to_midi("R")


def test_midi_to_note_uses_note_table():
    assert midi_to_note(63) == "Eb4"
    assert midi_to_note(60) == "C4"
    with pytest.raises(ValueError):
        midi_to_note(128)


def test_pitch_class():
    assert note_utils.pitch_class("Bb2") == 10
    assert note_utils.pitch_class("A#7") == 10
