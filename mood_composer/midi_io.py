"""Standard MIDI File export for composed pieces.

Modification summary
--------------------
* ``create_midi_file`` writes one track per layer so the melody, bass and
  chords can be revoiced independently in a sequencer.  Channels are fixed:
  melody on ``0``, bass on ``1`` and chords on ``2``.
* Layer velocities in ``0-1`` are scaled to MIDI velocities ``1-127``.  Rests
  and zero velocity notes advance time without sounding.
* ``create_midi_file`` creates the destination directory automatically so
  callers can pass a path in a new folder without preparing it.
* Imports from ``mido`` are deferred inside ``create_midi_file`` so the module
  can load even when the dependency is missing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from mido import MidiFile

from .note_utils import note_to_midi
from .piece import LAYER_NAMES, Layer, Piece
from .rhythm_engine import beats_for_duration
from .scheduler import is_silent

__all__ = ["create_midi_file", "LAYER_CHANNELS", "midi_velocity"]

LAYER_CHANNELS = {"melody": 0, "bass": 1, "chords": 2}
DEFAULT_PROGRAMS = {"melody": 0, "bass": 32, "chords": 0}
DEFAULT_VELOCITY = 64
TICKS_PER_BEAT = 480


def midi_velocity(velocity: Optional[float]) -> int:
    """Scale a ``0-1`` velocity to the MIDI range ``1-127``."""

    if velocity is None:
        return DEFAULT_VELOCITY
    return max(1, min(127, int(round(velocity * 127))))


def _layer_events(layer: Layer, ticks_per_beat: int) -> List[Tuple[int, int, str, int, int]]:
    """Return ``(tick, order, type, note, velocity)`` tuples for ``layer``.

    ``order`` places note-off messages before note-on messages that share a
    tick so repeated pitches retrigger cleanly.
    """

    events = []
    tick = 0
    for i, (note, symbol) in enumerate(zip(layer.notes, layer.durations)):
        length = int(round(beats_for_duration(symbol) * ticks_per_beat))
        velocity = layer.velocities[i] if layer.velocities is not None else None
        if not is_silent(note, velocity if velocity is not None else 1.0):
            midi_note = note_to_midi(note)
            vel = midi_velocity(velocity)
            events.append((tick, 1, "note_on", midi_note, vel))
            events.append((tick + length, 0, "note_off", midi_note, 0))
        tick += length
    events.sort(key=lambda e: (e[0], e[1]))
    return events


def create_midi_file(
    piece: Piece,
    output_file: str,
    *,
    layers: Sequence[str] = LAYER_NAMES,
    ticks_per_beat: int = TICKS_PER_BEAT,
) -> "MidiFile":
    """Write ``piece`` to ``output_file`` as a type 1 MIDI file.

    The first track carries the tempo, time signature and title.  Each
    requested layer present in the piece follows on its own track.

    @param piece (Piece): Piece to export.
    @param output_file (str): Destination path; parent folders are created.
    @param layers (Sequence[str]): Layers to include.
    @param ticks_per_beat (int): MIDI resolution.
    @returns MidiFile: In-memory representation of the written file.
    """
    try:
        import mido
        from mido import Message, MetaMessage, MidiFile, MidiTrack
    except ModuleNotFoundError as exc:
        raise ImportError(
            "mido is required to create MIDI files; install it with 'pip install mido'"
        ) from exc

    if ticks_per_beat <= 0:
        raise ValueError("ticks_per_beat must be positive")
    unknown = [name for name in layers if name not in LAYER_CHANNELS]
    if unknown:
        raise ValueError(f"Unknown layers: {', '.join(unknown)}")

    mid = MidiFile(type=1, ticks_per_beat=ticks_per_beat)
    meta = MidiTrack()
    mid.tracks.append(meta)
    meta.append(MetaMessage("track_name", name=piece.title, time=0))
    meta.append(MetaMessage("set_tempo", tempo=mido.bpm2tempo(piece.tempo), time=0))
    meta.append(MetaMessage("time_signature", numerator=4, denominator=4, time=0))

    present = piece.layers()
    for name in layers:
        layer = present.get(name)
        if layer is None:
            continue
        channel = LAYER_CHANNELS[name]
        track = MidiTrack()
        mid.tracks.append(track)
        track.append(MetaMessage("track_name", name=name, time=0))
        track.append(Message("program_change", program=DEFAULT_PROGRAMS[name], channel=channel, time=0))
        last = 0
        for tick, _order, kind, note, velocity in _layer_events(layer, ticks_per_beat):
            track.append(Message(kind, note=note, velocity=velocity, channel=channel, time=tick - last))
            last = tick

    Path(output_file).expanduser().parent.mkdir(parents=True, exist_ok=True)

    mid.save(output_file)
    logging.info("MIDI file saved to %s", output_file)
    return mid
