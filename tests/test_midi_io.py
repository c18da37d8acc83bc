"""Unit tests for ``midi_io``'s export and error handling.

Files are written to ``tmp_path`` and read back with ``mido`` so the checks
cover what a sequencer would actually see: one tempo track followed by one
track per layer, fixed channels per layer and rests that only move time.
"""

from __future__ import annotations

import builtins
import sys
from pathlib import Path

import pytest

# Ensure the package is importable regardless of the current working directory
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mood_composer import midi_io  # noqa: E402  # isort:skip
from mood_composer.piece import Layer, Piece  # noqa: E402  # isort:skip


def _piece(harmony=True):
    return Piece(
        title="Prelude No. 3",
        key="C major",
        tempo=120,
        mood="Tender",
        melody=Layer(["C4", "R", "E4"], ["4n", "4n", "2n"], [0.5, 0.5, 1.0]),
        bass=Layer(["C2"], ["1n"], [0.5]) if harmony else None,
        chords=Layer(["C3", "E4", "G4"], ["2n", "2n", "2n"]) if harmony else None,
    )


def _notes(track):
    return [msg for msg in track if msg.type in ("note_on", "note_off")]


def test_create_midi_file_writes_all_layers(tmp_path):
    """The written file has a tempo track and one track per layer."""

    from mido import MidiFile

    out = tmp_path / "song.mid"
    mid = midi_io.create_midi_file(_piece(), str(out))
    assert isinstance(mid, MidiFile)

    loaded = MidiFile(str(out))
    assert loaded.type == 1
    assert len(loaded.tracks) == 4

    meta = {msg.type: msg for msg in loaded.tracks[0] if msg.is_meta}
    assert meta["track_name"].name == "Prelude No. 3"
    assert meta["set_tempo"].tempo == 500000
    assert meta["time_signature"].numerator == 4

    for track, channel in zip(loaded.tracks[1:], (0, 1, 2)):
        assert {msg.channel for msg in _notes(track)} == {channel}


def test_rests_advance_time(tmp_path):
    out = tmp_path / "rest.mid"
    mid = midi_io.create_midi_file(_piece(), str(out))
    melody = _notes(mid.tracks[1])
    assert [(msg.type, msg.note, msg.time) for msg in melody] == [
        ("note_on", 60, 0),
        ("note_off", 60, 480),
        ("note_on", 64, 480),
        ("note_off", 64, 960),
    ]
    assert melody[0].velocity == 64
    assert melody[2].velocity == 127


def test_missing_velocities_use_default(tmp_path):
    mid = midi_io.create_midi_file(_piece(), str(tmp_path / "chords.mid"))
    chords = [msg for msg in _notes(mid.tracks[3]) if msg.type == "note_on"]
    assert [msg.velocity for msg in chords] == [64, 64, 64]
    assert [msg.note for msg in chords] == [48, 64, 67]


def test_melody_only_piece(tmp_path):
    mid = midi_io.create_midi_file(_piece(harmony=False), str(tmp_path / "solo.mid"))
    assert len(mid.tracks) == 2


def test_layer_selection_and_unknown_layer(tmp_path):
    mid = midi_io.create_midi_file(_piece(), str(tmp_path / "bass.mid"), layers=["bass"])
    assert len(mid.tracks) == 2
    with pytest.raises(ValueError, match="Unknown layers"):
        midi_io.create_midi_file(_piece(), str(tmp_path / "x.mid"), layers=["drums"])


def test_parent_directory_created(tmp_path, caplog):
    out = tmp_path / "nested" / "dir" / "song.mid"
    with caplog.at_level("INFO"):
        midi_io.create_midi_file(_piece(), str(out))
    assert out.is_file()
    assert "MIDI file saved" in caplog.text


@pytest.mark.parametrize("value,expected", [(None, 64), (0.0, 1), (0.5, 64), (1.0, 127), (2.0, 127)])
def test_midi_velocity(value, expected):
    assert midi_io.midi_velocity(value) == expected


def test_create_midi_file_missing_mido(monkeypatch, tmp_path):
    """Absent ``mido`` should raise ``ImportError`` with install guidance."""

    monkeypatch.delitem(sys.modules, "mido", raising=False)
    original_import = builtins.__import__

    def fake_import(name, globals=None, locals=None, fromlist=(), level=0):
        if name == "mido":
            raise ModuleNotFoundError("No module named 'mido'")
        return original_import(name, globals, locals, fromlist, level)

    monkeypatch.setattr(builtins, "__import__", fake_import)

    with pytest.raises(ImportError, match="pip install mido"):
        midi_io.create_midi_file(_piece(), str(tmp_path / "song.mid"))
