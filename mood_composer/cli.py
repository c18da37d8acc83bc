"""Command line helpers for Mood Composer.

Modification summary
--------------------
* Options fall back to values stored in the JSON settings file so a user's
  preferred mood, key, seed, SoundFont and effect levels apply to every run.
  ``--save-settings`` writes the options of the current run back to it.
* Unknown moods and keys are rejected with an error and exit status ``1``
  even though the library itself quietly falls back to defaults.
* Write failures for ``--output`` and ``--midi`` are logged and exit with
  status ``1`` so scripts notice that nothing was produced.

This module implements the console entry points for the project.
:func:`run_cli` parses the arguments, composes a piece and then writes it as
JSON, exports it as MIDI and/or plays it through FluidSynth for a number of
seconds.  When no output option is given the piece JSON is printed.

Example
-------
Running ``python -m mood_composer --mood Dreamy --key "D minor" --seed 4 \
    --midi dreamy.mid`` composes a reproducible piece and saves it to
``dreamy.mid``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from pathlib import Path
from typing import Dict, List, Optional

from . import KEYS, MOODS, ROOT_MAP, load_settings, save_settings

__all__ = ["build_parser", "validate_key", "run_cli", "main"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mood-composer",
        description="Compose a short piece from a mood and key, then save or play it.",
    )
    parser.add_argument("--list-moods", action="store_true", help="List all supported moods and exit")
    parser.add_argument("--list-keys", action="store_true", help="List the keys chosen from at random and exit")
    parser.add_argument("--mood", type=str, help="Mood of the piece (random when omitted)")
    parser.add_argument("--key", type=str, help='Key such as "C major" or "F# minor" (random when omitted)')
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output")
    parser.add_argument("--output", type=str, help="Write the piece as JSON to this path")
    parser.add_argument("--midi", type=str, help="Export the piece as a MIDI file to this path")
    parser.add_argument("--play", action="store_true", help="Play the piece through FluidSynth")
    parser.add_argument("--seconds", type=float, default=30.0, help="Seconds to play when --play is given (default: 30)")
    parser.add_argument("--soundfont", type=str, help="Path to a SoundFont (.sf2) file used by --play")
    parser.add_argument("--settings-file", type=str, help="Path to the JSON settings file")
    parser.add_argument("--save-settings", action="store_true", help="Store mood, key, seed and soundfont in the settings file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def validate_key(key: str) -> str:
    """Return ``key`` normalised to ``"<Root> <mode>"``.

    Raises
    ------
    ValueError
        If the root or mode is not recognised.
    """

    parts = key.split()
    if len(parts) != 2:
        raise ValueError(f"Invalid key: {key}")
    root, mode = parts[0], parts[1].lower()
    root = root[0].upper() + root[1:]
    if root not in ROOT_MAP or mode not in ("major", "minor"):
        raise ValueError(f"Invalid key: {key}")
    return f"{root} {mode}"


async def _play(piece, seconds: float, soundfont: Optional[str], effects: Dict[str, float]) -> None:
    from .playback import FluidSynthEnsemble, Player

    player = Player(lambda p: FluidSynthEnsemble(soundfont, harmony=p.has_harmony))
    try:
        await player.play(piece)
        for name, value in effects.items():
            player.set_effect(name, value)
        await asyncio.sleep(seconds)
    finally:
        player.stop()


def run_cli(argv: Optional[List[str]] = None) -> None:
    """Parse CLI arguments and compose a piece.

    ``--settings-file`` selects the JSON file whose ``mood``, ``key``,
    ``seed``, ``soundfont`` and ``effects`` entries provide defaults for
    options not given on the command line.
    """

    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list_moods:
        print("\n".join(MOODS))
        return
    if args.list_keys:
        print("\n".join(KEYS))
        return

    settings_path = Path(args.settings_file).expanduser() if args.settings_file else None
    settings = load_settings(settings_path) if settings_path else load_settings()

    mood = args.mood if args.mood is not None else settings.get("mood")
    key = args.key if args.key is not None else settings.get("key")
    seed = args.seed if args.seed is not None else settings.get("seed")
    soundfont = args.soundfont if args.soundfont is not None else settings.get("soundfont")
    effects = settings.get("effects") or {}

    if mood is not None and mood not in MOODS:
        logging.error(f"Unknown mood: {mood}")
        sys.exit(1)
    if key is not None:
        try:
            key = validate_key(key)
        except ValueError:
            logging.error("Invalid key provided.")
            sys.exit(1)
    if args.seconds <= 0:
        logging.error("Seconds must be a positive number.")
        sys.exit(1)
    if not isinstance(effects, dict):
        logging.error("Settings entry 'effects' must be an object.")
        sys.exit(1)

    from . import create_midi_file, generate_song

    rng = random.Random(seed) if seed is not None else None
    piece = generate_song(rng, mood=mood, key=key)
    logging.info(
        "Composed %s (%s) in %s, %s, %d BPM, %d notes",
        piece.title,
        piece.composer,
        piece.key,
        piece.mood,
        piece.tempo,
        len(piece.notes),
    )

    data = piece.to_dict()
    if args.output:
        try:
            Path(args.output).parent.mkdir(parents=True, exist_ok=True)
            with open(args.output, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
        except OSError as exc:
            logging.error("Could not write piece file: %s", exc)
            sys.exit(1)
        logging.info("Piece saved to %s", args.output)

    if args.midi:
        try:
            create_midi_file(piece, args.midi)
        except OSError as exc:
            logging.error("Could not write MIDI file: %s", exc)
            sys.exit(1)

    if not (args.output or args.midi or args.play):
        print(json.dumps(data, indent=2))

    if args.save_settings:
        updated = dict(settings)
        updated.update({"mood": piece.mood, "key": piece.key})
        if seed is not None:
            updated["seed"] = seed
        if soundfont:
            updated["soundfont"] = soundfont
        if settings_path:
            save_settings(updated, settings_path)
        else:
            save_settings(updated)

    if args.play:
        from .playback import PlaybackError

        try:
            asyncio.run(_play(piece, args.seconds, soundfont, effects))
        except PlaybackError as exc:
            logging.error("Playback failed: %s", exc)
            sys.exit(1)
        except ValueError as exc:
            logging.error(str(exc))
            sys.exit(1)


def main() -> None:
    """Console entry point configuring logging before running the CLI."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    run_cli()
