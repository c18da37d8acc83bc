"""Playback sessions driving instruments from a shared transport.

A :class:`Player` turns a :class:`~mood_composer.piece.Piece` into a running
playback session.  The work happens in four steps that are mirrored by
:class:`PlaybackState`:

``LOADING``
    Any previous session is stopped, then an *ensemble* (one instrument per
    layer) is created and its resources are awaited.  This is the only
    suspension point.  Loading is bounded by ``load_timeout``; a failure or
    timeout moves the session to ``FAILED`` and raises
    :class:`InstrumentLoadError`.
``SCHEDULED``
    Triggers for every layer are built with
    :func:`~mood_composer.scheduler.schedule_piece` and registered as parts
    of the process-wide transport, all looping at the melody length.
``RUNNING``
    The transport is started.  Each trigger calls the layer instrument's
    ``trigger_attack_release`` at its scheduled time and records a
    :class:`NoteEvent`.
``IDLE``
    :meth:`Player.stop` cancels all pending triggers, disposes the
    instruments and clears every piece of session state.  It may be called
    any number of times.

Instruments are duck typed.  The bundled :class:`FluidSynthEnsemble` plays
through PyFluidSynth and a General MIDI SoundFont located the same way as
the rest of the package (argument, ``SOUND_FONT`` environment variable, then
a platform default).

Example usage
-------------
>>> import asyncio
>>> from mood_composer import Player, generate_song
>>> async def demo():
...     player = Player()
...     await player.play(generate_song())
...     await asyncio.sleep(10)
...     player.stop()
>>> asyncio.run(demo())  # doctest: +SKIP
"""

# Revision note
# -------------
# ``_resolve_soundfont`` checks the standard SoundFont locations on Windows,
# macOS and Linux and reports a missing file with installation guidance.
#
# Loading the SoundFont blocks for a noticeable time with large banks, so
# ``FluidSynthEnsemble.load`` runs it in a worker thread and the event loop
# keeps servicing the transport clock.
#
# Note-off messages are scheduled with ``call_later`` on the event loop that
# drives the transport, so every trigger and release runs on one thread.
#
# An ensemble disposed while its SoundFont is still loading deletes the
# synthesizer the worker thread builds instead of keeping it.

from __future__ import annotations

import asyncio
import enum
import logging
import os
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional, Protocol, Tuple

from .note_utils import note_to_midi
from .piece import Piece
from .rng import RandomSource
from .scheduler import Trigger, loop_end, schedule_piece
from .transport import Transport, get_transport

__all__ = [
    "PlaybackError",
    "InstrumentLoadError",
    "Instrument",
    "Ensemble",
    "EffectParameter",
    "EFFECT_PARAMETERS",
    "EffectSettings",
    "PlaybackState",
    "NoteEvent",
    "Player",
    "FluidSynthInstrument",
    "FluidSynthEnsemble",
]


logger = logging.getLogger(__name__)

MAX_NOTE_EVENTS = 20
MAX_RECENT_NOTES = 5
DEFAULT_LOAD_TIMEOUT = 30.0


class PlaybackError(RuntimeError):
    """Raised when a playback session cannot be set up or controlled."""


class InstrumentLoadError(PlaybackError):
    """Raised when instrument resources fail to load or time out."""


class Instrument(Protocol):
    """Sound source receiving timed note triggers."""

    def trigger_attack_release(self, note: str, duration: float, time: float, velocity: float) -> None:
        ...

    def trigger_attack(self, note: str, time: float, velocity: float) -> None:
        ...

    def dispose(self) -> None:
        ...


class Ensemble(Protocol):
    """Group of instruments for the ``melody``, ``bass`` and ``chords`` layers.

    ``bass`` and ``chords`` may be ``None`` when only the melody is played.
    """

    melody: Optional[Instrument]
    bass: Optional[Instrument]
    chords: Optional[Instrument]

    async def load(self) -> None:
        ...

    def dispose(self) -> None:
        ...


@dataclass(frozen=True)
class EffectParameter:
    """Range and default of a tunable mixer parameter."""

    name: str
    minimum: float
    maximum: float
    default: float

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))


EFFECT_PARAMETERS: Dict[str, EffectParameter] = {
    p.name: p
    for p in (
        EffectParameter("melody_volume", -30.0, 6.0, -3.0),
        EffectParameter("bass_volume", -30.0, 6.0, -6.0),
        EffectParameter("chords_volume", -30.0, 6.0, -10.0),
        EffectParameter("reverb", 0.0, 1.0, 0.35),
        EffectParameter("delay", 0.0, 1.0, 0.18),
        EffectParameter("chorus", 0.0, 1.0, 0.2),
    )
}


class EffectSettings:
    """Current values of the named effect parameters.

    Values are clamped to each parameter's range.  When ``listener`` is
    given it is called with ``(name, value)`` after every change so an
    ensemble can apply the setting to its audio engine.
    """

    def __init__(self, listener: Optional[Callable[[str, float], None]] = None) -> None:
        self._values: Dict[str, float] = {name: p.default for name, p in EFFECT_PARAMETERS.items()}
        self._listener = listener

    def __getitem__(self, name: str) -> float:
        return self._values[name]

    def set(self, name: str, value: float) -> float:
        """Set ``name`` to ``value`` and return the stored (clamped) value."""

        param = EFFECT_PARAMETERS.get(name)
        if param is None:
            logging.error("Unknown effect parameter: %s", name)
            raise ValueError(f"Unknown effect parameter: {name}")
        clamped = param.clamp(float(value))
        self._values[name] = clamped
        if self._listener is not None:
            self._listener(name, clamped)
        return clamped

    def apply_all(self) -> None:
        """Send every current value to the listener."""

        if self._listener is not None:
            for name, value in self._values.items():
                self._listener(name, value)

    def as_dict(self) -> Dict[str, float]:
        return dict(self._values)


class PlaybackState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    FAILED = "failed"


@dataclass(frozen=True)
class NoteEvent:
    """Record of a fired trigger for visualisation or logging."""

    note: str
    layer: str
    timestamp: float
    velocity: float


class Player:
    """Owns at most one playback session at a time.

    @param ensemble_factory (Callable[[Piece], Ensemble]|None): Creates the
        instruments for a piece. Defaults to :class:`FluidSynthEnsemble`.
    @param transport (Transport|None): Timeline to schedule on. Defaults to
        the process-wide transport.
    @param load_timeout (float): Seconds to wait for instruments to load.
    @param clock (Callable[[], float]): Wall clock used for event timestamps.
    @param rng (RandomSource|None): Source for timing humanization.
    """

    def __init__(
        self,
        ensemble_factory: Optional[Callable[[Piece], Ensemble]] = None,
        *,
        transport: Optional[Transport] = None,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
        clock: Callable[[], float] = time.time,
        rng: Optional[RandomSource] = None,
    ) -> None:
        if load_timeout <= 0:
            raise ValueError("load_timeout must be positive")
        self._factory = ensemble_factory or _default_ensemble
        self.transport = transport if transport is not None else get_transport()
        self.load_timeout = load_timeout
        self.clock = clock
        self.rng = rng

        self.state = PlaybackState.IDLE
        self.playing_index: Optional[int] = None
        self.current_piece: Optional[Piece] = None
        self.current_note: Optional[str] = None
        self.recent_notes: Deque[str] = deque(maxlen=MAX_RECENT_NOTES)
        self.note_events: Deque[NoteEvent] = deque(maxlen=MAX_NOTE_EVENTS)
        self.effects: Optional[EffectSettings] = None
        self.error: Optional[BaseException] = None
        self._ensemble: Optional[Ensemble] = None
        self._session = 0

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.RUNNING

    def _set_state(self, state: PlaybackState) -> None:
        if state is not self.state:
            logger.debug("Playback state %s -> %s", self.state.value, state.value)
        self.state = state

    async def play(self, piece: Piece, index: int = 0) -> bool:
        """Start playing ``piece`` and return once the transport is running.

        @param piece (Piece): Piece to play. Bass and chords are only played
            when both are present.
        @param index (int): Caller supplied position of the piece, exposed as
            :attr:`playing_index`.
        @returns bool: ``True`` when the session reached ``RUNNING``,
            ``False`` when a later :meth:`play` or :meth:`stop` superseded it
            while instruments were loading.
        @raises InstrumentLoadError: When the instruments fail to load.
        """

        self.stop()
        self._session += 1
        session = self._session
        self.error = None
        self._set_state(PlaybackState.LOADING)

        ensemble = self._factory(piece)
        self._ensemble = ensemble
        self.current_piece = piece
        self.playing_index = index
        self.effects = EffectSettings(getattr(ensemble, "set_effect", None))

        try:
            await asyncio.wait_for(ensemble.load(), timeout=self.load_timeout)
        except asyncio.TimeoutError as exc:
            self._fail(session, exc)
            raise InstrumentLoadError(
                f"Instruments did not load within {self.load_timeout} seconds"
            ) from exc
        except asyncio.CancelledError:
            if session == self._session:
                self.stop()
            raise
        except Exception as exc:
            self._fail(session, exc)
            raise InstrumentLoadError(f"Could not load instruments: {exc}") from exc

        if session != self._session:
            # The session was torn down while loading; resources acquired
            # after that teardown still belong to this ensemble.
            logger.debug("Playback session %d superseded during loading", session)
            _dispose_quietly(ensemble)
            return False

        self.effects.apply_all()
        self._schedule(piece, ensemble, session)
        self.transport.start()
        self._set_state(PlaybackState.RUNNING)
        return True

    def _schedule(self, piece: Piece, ensemble: Ensemble, session: int) -> None:
        transport = self.transport
        transport.stop()
        transport.cancel()

        for name, triggers in schedule_piece(piece, self.rng).items():
            instrument = getattr(ensemble, name, None)
            if instrument is None:
                logger.warning("Ensemble has no %s instrument; layer skipped", name)
                continue
            transport.add_part(
                name,
                [(t.time, t) for t in triggers],
                self._make_callback(instrument, session),
            )
        # Every layer restarts at the melody length.
        transport.set_loop(loop_end(piece))
        self._set_state(PlaybackState.SCHEDULED)

    def _make_callback(self, instrument: Instrument, session: int) -> Callable[[float, Trigger], None]:
        def fire(when: float, trigger: Trigger) -> None:
            if session != self._session:
                return
            instrument.trigger_attack_release(trigger.note, trigger.duration, when, trigger.velocity)
            if trigger.layer == "melody":
                self.current_note = trigger.note
                self.recent_notes.appendleft(trigger.note)
            self.note_events.appendleft(
                NoteEvent(trigger.note, trigger.layer, self.clock(), trigger.velocity)
            )

        return fire

    def set_effect(self, name: str, value: float) -> float:
        """Change an effect parameter of the active session."""

        if self.effects is None:
            raise PlaybackError("No active playback session")
        return self.effects.set(name, value)

    def _fail(self, session: int, exc: BaseException) -> None:
        logger.error("Instrument loading failed: %s", exc)
        if session != self._session:
            return
        self._teardown()
        self.error = exc
        self._set_state(PlaybackState.FAILED)

    def _teardown(self) -> None:
        self.transport.stop()
        self.transport.cancel()

        ensemble, self._ensemble = self._ensemble, None
        if ensemble is not None:
            _dispose_quietly(ensemble)

        self.playing_index = None
        self.current_piece = None
        self.current_note = None
        self.recent_notes.clear()
        self.note_events.clear()
        self.effects = None

    def stop(self) -> None:
        """Cancel the current session and reset all playback state.

        Safe to call when nothing is playing.
        """

        self._session += 1
        self._teardown()
        self.error = None
        self._set_state(PlaybackState.IDLE)


def _dispose_quietly(ensemble: Ensemble) -> None:
    try:
        ensemble.dispose()
    except Exception as exc:
        logger.warning("Failed to dispose instruments: %s", exc)


def _resolve_soundfont(sf: Optional[str]) -> str:
    """Return the path to the SoundFont used for synthesis.

    Parameters
    ----------
    sf:
        Optional path supplied by the caller. When ``None`` the
        ``SOUND_FONT`` environment variable is consulted followed by
        platform-specific defaults.

    Raises
    ------
    PlaybackError
        If no valid file can be located.
    """

    if sf:
        candidate = sf
    else:
        candidate = os.environ.get("SOUND_FONT")
        if not candidate:
            if sys.platform.startswith("win"):
                candidate = r"C:\\Windows\\System32\\drivers\\gm.dls"
            elif sys.platform == "darwin":
                candidate = "/Library/Audio/Sounds/Banks/FluidR3_GM.sf2"
            else:
                candidate = "/usr/share/sounds/sf2/TimGM6mb.sf2"

    candidate = os.path.expanduser(os.path.expandvars(candidate))
    if not os.path.isfile(candidate):
        raise PlaybackError(
            "SoundFont not found. Provide a valid path via the argument or "
            "SOUND_FONT environment variable, or install a General MIDI soundfont."
        )
    return candidate


def _import_fluidsynth():
    try:
        import fluidsynth  # type: ignore
    except FileNotFoundError as exc:
        # Raised by PyFluidSynth when the C library itself is missing.
        raise PlaybackError(
            "fluidsynth not installed. Install the FluidSynth library and "
            "pyFluidSynth package."
        ) from exc
    except ImportError as exc:
        raise PlaybackError("PyFluidSynth is required for playback") from exc
    return fluidsynth


# General MIDI controller numbers.
CC_VOLUME = 7
CC_REVERB = 91
CC_CHORUS = 93
CC_EFFECT_DEPTH = 94
CC_ALL_NOTES_OFF = 123

EFFECT_CONTROLLERS = {"reverb": CC_REVERB, "chorus": CC_CHORUS, "delay": CC_EFFECT_DEPTH}


def _velocity_127(velocity: float) -> int:
    return max(1, min(127, int(round(velocity * 127))))


def _db_to_cc(decibels: float) -> int:
    return max(0, min(127, int(round(127 * 10 ** (decibels / 20)))))


class FluidSynthInstrument:
    """One MIDI channel of a running FluidSynth synthesizer.

    ``trigger_attack_release`` sounds the note immediately since the
    transport fires callbacks at their scheduled time.  The matching
    note-off is scheduled on the running event loop ``duration`` seconds
    later, so it must be called from inside that loop.
    """

    def __init__(self, synth: Any, channel: int) -> None:
        self.synth = synth
        self.channel = channel
        self._releases: Dict[int, asyncio.TimerHandle] = {}
        self._next_token = 0

    def trigger_attack(self, note: str, time: float, velocity: float) -> None:
        self.synth.noteon(self.channel, note_to_midi(note), _velocity_127(velocity))

    def trigger_attack_release(self, note: str, duration: float, time: float, velocity: float) -> None:
        midi = note_to_midi(note)
        loop = asyncio.get_running_loop()
        self.synth.noteon(self.channel, midi, _velocity_127(velocity))
        token = self._next_token
        self._next_token += 1
        self._releases[token] = loop.call_later(duration, self._release, token, midi)

    def _release(self, token: int, midi: int) -> None:
        self._releases.pop(token, None)
        self.synth.noteoff(self.channel, midi)

    @property
    def pending_releases(self) -> int:
        return len(self._releases)

    def dispose(self) -> None:
        handles, self._releases = self._releases, {}
        for handle in handles.values():
            handle.cancel()
        self.synth.cc(self.channel, CC_ALL_NOTES_OFF, 0)


class FluidSynthEnsemble:
    """Melody, bass and chord instruments sharing one FluidSynth instance.

    The SoundFont is loaded in a worker thread.  When :meth:`dispose` runs
    before that thread finishes, the synthesizer it builds is deleted
    instead of being kept.

    @param soundfont (str|None): SoundFont path. See :func:`_resolve_soundfont`.
    @param harmony (bool): Create the bass and chord instruments as well as
        the melody.
    @param programs (tuple): General MIDI programs for melody, bass and
        chords.
    """

    LAYERS: Tuple[str, ...] = ("melody", "bass", "chords")

    def __init__(
        self,
        soundfont: Optional[str] = None,
        *,
        harmony: bool = True,
        programs: Tuple[int, int, int] = (0, 32, 0),
    ) -> None:
        self.soundfont = soundfont
        self.harmony = harmony
        self.programs = programs
        self.melody: Optional[FluidSynthInstrument] = None
        self.bass: Optional[FluidSynthInstrument] = None
        self.chords: Optional[FluidSynthInstrument] = None
        self.disposed = False
        self._synth: Any = None
        self._lock = threading.Lock()

    async def load(self) -> None:
        await asyncio.to_thread(self._load_blocking)

    def _load_blocking(self) -> None:
        fluidsynth = _import_fluidsynth()
        sf_path = _resolve_soundfont(self.soundfont)
        synth = fluidsynth.Synth()
        instruments: Dict[str, FluidSynthInstrument] = {}
        try:
            synth.start()
            sfid = synth.sfload(sf_path)
            layers = self.LAYERS if self.harmony else self.LAYERS[:1]
            for channel, name in enumerate(layers):
                synth.program_select(channel, sfid, 0, self.programs[channel])
                instruments[name] = FluidSynthInstrument(synth, channel)
        except Exception as exc:
            synth.delete()
            raise PlaybackError(f"Could not start FluidSynth: {exc}") from exc
        self._install(synth, instruments)
        logger.debug("Loaded SoundFont %s", sf_path)

    def _install(self, synth: Any, instruments: Dict[str, FluidSynthInstrument]) -> None:
        with self._lock:
            if not self.disposed:
                for name, instrument in instruments.items():
                    setattr(self, name, instrument)
                self._synth = synth
                return
        logger.debug("Ensemble disposed during loading; discarding synthesizer")
        synth.delete()

    def set_effect(self, name: str, value: float) -> None:
        """Map an effect parameter onto General MIDI controllers."""

        if self._synth is None:
            return
        if name.endswith("_volume"):
            instrument = getattr(self, name[: -len("_volume")], None)
            if instrument is not None:
                self._synth.cc(instrument.channel, CC_VOLUME, _db_to_cc(value))
            return
        controller = EFFECT_CONTROLLERS.get(name)
        if controller is None:
            return
        for layer in self.LAYERS:
            instrument = getattr(self, layer)
            if instrument is not None:
                self._synth.cc(instrument.channel, controller, int(round(value * 127)))

    def dispose(self) -> None:
        with self._lock:
            self.disposed = True
            instruments = [getattr(self, name) for name in self.LAYERS]
            for name in self.LAYERS:
                setattr(self, name, None)
            synth, self._synth = self._synth, None
        for instrument in instruments:
            if instrument is not None:
                instrument.dispose()
        if synth is not None:
            synth.delete()


def _default_ensemble(piece: Piece) -> FluidSynthEnsemble:
    return FluidSynthEnsemble(harmony=piece.has_harmony)
