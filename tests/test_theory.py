"""Tests for the music theory tables and helpers in ``mood_composer``.

These cover key parsing, scale degree rendering and the JSON settings
helpers that live at package level.
"""

import importlib
import json
import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

mood_composer = importlib.import_module("mood_composer")
parse_key = mood_composer.parse_key
degree_to_note = mood_composer.degree_to_note
scale_length = mood_composer.scale_length


@pytest.mark.parametrize(
    "key,expected",
    [
        ("C major", (0, "major")),
        ("Eb major", (3, "major")),
        ("D# major", (3, "major")),
        ("F# minor", (6, "minor")),
        ("A", (9, "major")),
        ("G dorian", (7, "major")),
    ],
)
def test_parse_key(key, expected):
    """Roots map through ``ROOT_MAP`` and only ``minor`` selects minor."""
    assert parse_key(key) == expected


def test_parse_key_unknown_root_falls_back_to_c(caplog):
    """An unknown root logs a warning and uses C rather than raising."""
    with caplog.at_level(logging.WARNING):
        assert parse_key("H minor") == (0, "minor")
    assert "H" in caplog.text


def test_scale_length_defaults_to_major():
    assert scale_length("minor") == 7
    assert scale_length("lydian") == 7


def test_degree_to_note_base_octave():
    """Degree 0 at octave offset 0 sounds in octave three."""
    assert degree_to_note(0, 0, 0, "major") == "C3"
    assert degree_to_note(4, 1, 0, "major") == "G4"


def test_degree_to_note_minor_uses_flat_spelling():
    assert degree_to_note(2, 0, 0, "minor") == "Eb3"
    assert degree_to_note(5, 0, 0, "minor") == "Ab3"


def test_degree_to_note_carries_octaves():
    """Degrees outside the scale wrap and move whole octaves."""
    assert degree_to_note(7, 0, 2, "major") == "D4"
    assert degree_to_note(-1, 0, 0, "major") == "B2"


def test_degree_to_note_wraps_root_past_b():
    """Semitones above B wrap around the twelve note table."""
    # B major: degree 1 is C#.
    assert degree_to_note(1, 0, 11, "major") == "C#3"


def test_progressions_only_use_scale_degrees():
    for mode, progressions in mood_composer.CHORD_PROGRESSIONS.items():
        for progression in progressions:
            assert all(0 <= degree < scale_length(mode) for degree in progression)


def test_interval_weights_favour_steps():
    weights = mood_composer.INTERVAL_WEIGHTS
    assert max(weights, key=weights.get) == 1
    assert sum(weights.values()) == 100


def test_settings_round_trip(tmp_path):
    """Saved settings are read back unchanged."""
    path = tmp_path / "settings.json"
    mood_composer.save_settings({"mood": "Dreamy", "seed": 3}, path)
    assert mood_composer.load_settings(path) == {"mood": "Dreamy", "seed": 3}


def test_load_settings_missing_file(tmp_path):
    assert mood_composer.load_settings(tmp_path / "missing.json") == {}


def test_load_settings_rejects_non_object(tmp_path, caplog):
    """A JSON list is not a settings object and yields defaults."""
    path = tmp_path / "settings.json"
    path.write_text(json.dumps(["Dreamy"]))
    with caplog.at_level(logging.ERROR):
        assert mood_composer.load_settings(path) == {}
    assert "does not contain an object" in caplog.text
