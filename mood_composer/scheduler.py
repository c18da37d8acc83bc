"""Conversion of piece layers into timed trigger instructions.

The scheduler is pure: it reads a :class:`~mood_composer.piece.Piece` and
returns :class:`Trigger` objects without touching any audio resource.  For
each layer a running cursor starts at the layer offset and advances by the
nominal length of every note.  Triggers are placed at the cursor plus a
small humanization offset, clamped so no trigger lands before time zero,
and their sounding length is stretched by a per-layer overlap factor so
consecutive notes blend slightly.  Rests advance the cursor without
producing a trigger.

The loop boundary for playback is the nominal length of the melody layer
in seconds; :func:`loop_end` returns ``None`` when that length is not
positive so callers never configure a zero-length loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .dynamics import humanize_offset, velocity_curve
from .note_utils import is_rest
from .piece import LAYER_NAMES, Layer, Piece
from .rhythm_engine import duration_seconds
from .rng import RandomSource, resolve

__all__ = [
    "Trigger",
    "OVERLAP_FACTORS",
    "overlap_factor",
    "is_silent",
    "schedule_layer",
    "schedule_piece",
    "piece_duration",
    "loop_end",
]

# Sounding length relative to the nominal length, per layer.
OVERLAP_FACTORS: Dict[str, float] = {
    "melody": 1.15,
    "bass": 1.25,
    "chords": 1.25,
}


@dataclass(frozen=True)
class Trigger:
    """One note to be started at ``time`` seconds and held for ``duration``."""

    time: float
    note: str
    duration: float
    velocity: float
    layer: str
    index: int


def overlap_factor(layer: str) -> float:
    """Return the legato extension applied to notes of ``layer``."""

    return OVERLAP_FACTORS.get(layer, OVERLAP_FACTORS["bass"])


def is_silent(note: str, velocity: float) -> bool:
    """Return ``True`` when ``note`` should not produce a trigger."""

    return is_rest(note) or velocity == 0


def schedule_layer(
    layer_name: str,
    layer: Layer,
    tempo: float,
    *,
    mood: str = "",
    rng: Optional[RandomSource] = None,
    start: float = 0.0,
) -> List[Trigger]:
    """Return the triggers for one layer.

    @param layer_name (str): ``"melody"``, ``"bass"`` or ``"chords"``.
    @param layer (Layer): Notes and durations to schedule.
    @param tempo (float): Beats per minute.
    @param mood (str): Mood used for the fallback velocity curve when the
        layer carries no velocities.
    @param rng (RandomSource|None): Source for humanization.
    @param start (float): Offset in seconds of the first note.
    @returns list[Trigger]: Triggers in note order.
    """

    rng = resolve(rng)
    velocities: Sequence[float]
    if layer.velocities is not None:
        velocities = layer.velocities
    else:
        velocities = velocity_curve(mood, len(layer), rng)

    factor = overlap_factor(layer_name)
    triggers: List[Trigger] = []
    cursor = 0.0
    for i, (note, symbol) in enumerate(zip(layer.notes, layer.durations)):
        seconds = duration_seconds(symbol, tempo)
        # The offset is drawn for rests too so every note consumes one value.
        offset = humanize_offset(i, rng)
        if not is_silent(note, velocities[i]):
            triggers.append(
                Trigger(
                    time=max(0.0, start + cursor + offset),
                    note=note,
                    duration=seconds * factor,
                    velocity=velocities[i],
                    layer=layer_name,
                    index=i,
                )
            )
        cursor += seconds
    return triggers


def schedule_piece(
    piece: Piece,
    rng: Optional[RandomSource] = None,
) -> Dict[str, List[Trigger]]:
    """Return triggers for every layer that will be played.

    Bass and chords are only scheduled when both are present, otherwise the
    melody plays alone.
    """

    rng = resolve(rng)
    layers = piece.layers() if piece.has_harmony else {"melody": piece.melody}
    return {
        name: schedule_layer(name, layers[name], piece.tempo, mood=piece.mood, rng=rng)
        for name in LAYER_NAMES
        if name in layers
    }


def piece_duration(piece: Piece) -> float:
    """Return the nominal length of the melody layer in seconds."""

    return sum(duration_seconds(symbol, piece.tempo) for symbol in piece.durations)


def loop_end(piece: Piece) -> Optional[float]:
    """Return the shared loop boundary or ``None`` when looping is disabled."""

    total = piece_duration(piece)
    return total if total > 0 else None
