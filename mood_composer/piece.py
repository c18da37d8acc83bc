"""Immutable value objects describing a composed piece.

A :class:`Piece` is the only contract between generation and playback.  It
holds the metadata shown to listeners (title, composer, key, tempo, mood)
and up to three :class:`Layer` objects.  The melody is mandatory while the
bass and chord layers are optional so hand written or sliced pieces can be
played as a single line.

Both classes are frozen dataclasses that store tuples, so once a piece has
been generated nothing downstream can modify it.  :meth:`Piece.to_dict` and
:meth:`Piece.from_dict` convert to and from the flat JSON structure used by
saved pieces::

    {"title": ..., "notes": [...], "durations": [...], "velocities": [...],
     "bass": {"notes": [...], "durations": [...], "velocities": [...]},
     "chords": {...}, "generated": true}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from .rhythm_engine import group_into_measures

__all__ = ["Layer", "Piece", "LAYER_NAMES", "slice_piece"]

LAYER_NAMES = ("melody", "bass", "chords")


def _as_tuple(values: Optional[Iterable[Any]]) -> Optional[Tuple[Any, ...]]:
    if values is None:
        return None
    return tuple(values)


@dataclass(frozen=True)
class Layer:
    """Parallel note, duration and optional velocity sequences."""

    notes: Tuple[str, ...] = ()
    durations: Tuple[str, ...] = ()
    velocities: Optional[Tuple[float, ...]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "notes", tuple(self.notes))
        object.__setattr__(self, "durations", tuple(self.durations))
        object.__setattr__(self, "velocities", _as_tuple(self.velocities))
        if len(self.notes) != len(self.durations):
            raise ValueError("notes and durations must have the same length")
        if self.velocities is not None and len(self.velocities) != len(self.notes):
            raise ValueError("velocities must match notes")

    def __len__(self) -> int:
        return len(self.notes)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "notes": list(self.notes),
            "durations": list(self.durations),
        }
        if self.velocities is not None:
            data["velocities"] = list(self.velocities)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Layer":
        return cls(
            notes=data.get("notes", ()),
            durations=data.get("durations", ()),
            velocities=data.get("velocities"),
        )


@dataclass(frozen=True)
class Piece:
    """A complete composition with metadata and up to three layers.

    ``progression`` records the chord degrees shared by all generated layers.
    It is empty for pieces that were not produced by the generator.
    """

    title: str
    key: str
    tempo: float
    mood: str
    melody: Layer
    subtitle: str = ""
    composer: str = ""
    year: int = 0
    bass: Optional[Layer] = None
    chords: Optional[Layer] = None
    generated: bool = False
    progression: Tuple[int, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "progression", tuple(self.progression))
        if self.tempo <= 0:
            raise ValueError("tempo must be positive")

    @property
    def notes(self) -> Tuple[str, ...]:
        return self.melody.notes

    @property
    def durations(self) -> Tuple[str, ...]:
        return self.melody.durations

    @property
    def velocities(self) -> Optional[Tuple[float, ...]]:
        return self.melody.velocities

    @property
    def has_harmony(self) -> bool:
        """``True`` when both accompaniment layers are present."""

        return self.bass is not None and self.chords is not None

    def layers(self) -> Dict[str, Layer]:
        """Return the layers that are present, keyed by layer name."""

        found = {"melody": self.melody}
        if self.bass is not None:
            found["bass"] = self.bass
        if self.chords is not None:
            found["chords"] = self.chords
        return found

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON serialisable dictionary using the saved-piece layout."""

        data: Dict[str, Any] = {
            "title": self.title,
            "subtitle": self.subtitle,
            "composer": self.composer,
            "year": self.year,
            "key": self.key,
            "tempo": self.tempo,
            "mood": self.mood,
        }
        data.update(self.melody.to_dict())
        if self.bass is not None:
            data["bass"] = self.bass.to_dict()
        if self.chords is not None:
            data["chords"] = self.chords.to_dict()
        if self.progression:
            data["progression"] = list(self.progression)
        data["generated"] = self.generated
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Piece":
        """Build a piece from :meth:`to_dict` output.

        Raises
        ------
        ValueError
            If required fields are missing or the layers are inconsistent.
        """

        missing = [name for name in ("title", "key", "tempo", "notes", "durations") if name not in data]
        if missing:
            logging.error("Piece data missing fields: %s", ", ".join(missing))
            raise ValueError(f"Missing piece fields: {', '.join(missing)}")
        try:
            bass = Layer.from_dict(data["bass"]) if data.get("bass") else None
            chords = Layer.from_dict(data["chords"]) if data.get("chords") else None
            return cls(
                title=str(data["title"]),
                subtitle=str(data.get("subtitle", "")),
                composer=str(data.get("composer", "")),
                year=int(data.get("year", 0)),
                key=str(data["key"]),
                tempo=float(data["tempo"]),
                mood=str(data.get("mood", "")),
                melody=Layer(
                    notes=data["notes"],
                    durations=data["durations"],
                    velocities=data.get("velocities"),
                ),
                bass=bass,
                chords=chords,
                generated=bool(data.get("generated", False)),
                progression=data.get("progression", ()),
            )
        except (TypeError, ValueError) as exc:
            logging.error("Invalid piece data: %s", exc)
            raise ValueError(f"Invalid piece data: {exc}") from exc


def _slice_layer(layer: Layer, start: int) -> Layer:
    velocities: Optional[Sequence[float]] = None
    if layer.velocities is not None:
        velocities = layer.velocities[start:]
    return Layer(layer.notes[start:], layer.durations[start:], velocities)


def slice_piece(piece: Piece, measure_index: int) -> Piece:
    """Return ``piece`` with its melody starting at ``measure_index``.

    Measures are computed with :func:`group_into_measures`.  The bass and
    chord layers are kept whole because they loop on their own.

    Raises
    ------
    ValueError
        If ``measure_index`` does not name an existing melody measure.
    """

    measures = group_into_measures(piece.notes, piece.durations)
    if not 0 <= measure_index < len(measures):
        raise ValueError(
            f"measure_index {measure_index} out of range 0-{len(measures) - 1}"
        )
    start = measures[measure_index].start_index
    return replace(piece, melody=_slice_layer(piece.melody, start))
