"""Command line interface tests.

Every invocation passes ``--settings-file`` inside ``tmp_path`` so the
user's real settings are never read or overwritten.  Playback is replaced
with a stub because the test environment has no audio output.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mood_composer import MOODS, cli  # noqa: E402
from mood_composer.playback import PlaybackError  # noqa: E402


@pytest.fixture
def settings_file(tmp_path):
    return tmp_path / "settings.json"


def _run(settings_file, *args):
    cli.run_cli(["--settings-file", str(settings_file), *args])


def test_list_moods(settings_file, capsys):
    _run(settings_file, "--list-moods")
    assert capsys.readouterr().out.split("\n")[: len(MOODS)] == list(MOODS)


def test_output_json(settings_file, tmp_path):
    out = tmp_path / "pieces" / "piece.json"
    _run(settings_file, "--mood", "Dreamy", "--key", "d minor", "--seed", "3", "--output", str(out))
    data = json.loads(out.read_text())
    assert data["mood"] == "Dreamy"
    assert data["key"] == "D minor"
    assert data["generated"] is True
    assert len(data["notes"]) == len(data["durations"])


def test_seed_is_reproducible(settings_file, capsys):
    _run(settings_file, "--seed", "11")
    first = capsys.readouterr().out
    _run(settings_file, "--seed", "11")
    assert capsys.readouterr().out == first
    assert "title" in json.loads(first)


@pytest.mark.parametrize(
    "args,message",
    [
        (["--mood", "Grumpy"], "Unknown mood: Grumpy"),
        (["--key", "H major"], "Invalid key provided."),
        (["--key", "C lydian"], "Invalid key provided."),
        (["--play", "--seconds", "0"], "Seconds must be a positive number."),
    ],
)
def test_invalid_arguments_exit(settings_file, caplog, args, message):
    with pytest.raises(SystemExit) as excinfo:
        _run(settings_file, *args)
    assert excinfo.value.code == 1
    assert message in caplog.text


def test_midi_export(settings_file, tmp_path):
    from mido import MidiFile

    out = tmp_path / "song.mid"
    _run(settings_file, "--seed", "2", "--midi", str(out))
    assert len(MidiFile(str(out)).tracks) == 4


def test_unwritable_output_exits(settings_file, tmp_path, caplog):
    """A directory in place of the output file is reported and exits 1."""
    blocked = tmp_path / "blocked"
    blocked.mkdir()
    with pytest.raises(SystemExit) as excinfo:
        _run(settings_file, "--seed", "1", "--output", str(blocked))
    assert excinfo.value.code == 1
    assert "Could not write piece file" in caplog.text


def test_settings_provide_defaults(settings_file, capsys):
    settings_file.write_text(json.dumps({"mood": "Solemn", "key": "Eb major", "seed": 8}))
    _run(settings_file)
    first = json.loads(capsys.readouterr().out)
    assert first["mood"] == "Solemn"
    assert first["key"] == "Eb major"
    _run(settings_file)
    assert json.loads(capsys.readouterr().out) == first


def test_command_line_overrides_settings(settings_file, capsys):
    settings_file.write_text(json.dumps({"mood": "Solemn"}))
    _run(settings_file, "--mood", "Fierce")
    assert json.loads(capsys.readouterr().out)["mood"] == "Fierce"


def test_save_settings(settings_file, capsys):
    _run(settings_file, "--mood", "Playful", "--key", "A minor", "--seed", "9", "--save-settings")
    stored = json.loads(settings_file.read_text())
    assert stored == {"mood": "Playful", "key": "A minor", "seed": 9}


def test_play_invokes_player(settings_file, monkeypatch):
    calls = []

    async def fake_play(piece, seconds, soundfont, effects):
        calls.append((piece.mood, seconds, soundfont, effects))

    monkeypatch.setattr(cli, "_play", fake_play)
    settings_file.write_text(json.dumps({"effects": {"reverb": 0.6}}))
    _run(settings_file, "--mood", "Tender", "--play", "--seconds", "2", "--soundfont", "x.sf2")
    assert calls == [("Tender", 2.0, "x.sf2", {"reverb": 0.6})]


def test_play_failure_exits(settings_file, monkeypatch, caplog):
    async def failing_play(piece, seconds, soundfont, effects):
        raise PlaybackError("SoundFont not found.")

    monkeypatch.setattr(cli, "_play", failing_play)
    with caplog.at_level(logging.ERROR):
        with pytest.raises(SystemExit) as excinfo:
            _run(settings_file, "--play")
    assert excinfo.value.code == 1
    assert "Playback failed: SoundFont not found." in caplog.text


@pytest.mark.parametrize(
    "key,expected",
    [("c major", "C major"), ("F# MINOR", "F# minor"), ("bb major", "Bb major")],
)
def test_validate_key(key, expected):
    assert cli.validate_key(key) == expected
