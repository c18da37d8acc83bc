"""Process-wide transport clock dispatching timed events.

The transport owns a timeline made of *parts*.  A part is a named list of
``(time, payload)`` events plus a callback and, optionally, a loop boundary.
Pending events live in a single :mod:`heapq` keyed by
``(time, layer rank, event index, iteration)`` so events always fire in
non-decreasing time order and ties are resolved the same way on every run:
melody before bass before chords, then by position inside the part.

When a looping event fires, the same event is pushed again one loop length
later.  Events placed at or after a part's loop boundary never fire while
the part loops, matching how a loop region is usually treated by
sequencers.

Time only moves through :meth:`Transport.advance`.  A realtime transport
runs an :mod:`asyncio` task that calls ``advance`` with the elapsed
monotonic time; tests construct ``Transport(realtime=False)`` and advance it
by hand.  An exception raised by a part callback is logged and dispatch
continues with the next event.  :meth:`Transport.cancel` removes every part
and pending event and invalidates any dispatch loop that is currently
running, so no event from a cancelled timeline fires after ``cancel``
returns.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

__all__ = ["Part", "Transport", "LAYER_RANK", "get_transport", "reset_transport"]

# Tie break order for events scheduled at the same instant.
LAYER_RANK: Dict[str, int] = {"melody": 0, "bass": 1, "chords": 2}

EventCallback = Callable[[float, Any], None]
HeapEntry = Tuple[float, int, int, int, str]


@dataclass
class Part:
    """Events belonging to one layer of the timeline."""

    name: str
    events: List[Tuple[float, Any]]
    callback: EventCallback
    loop_end: Optional[float] = None
    rank: int = field(default=0)

    @property
    def loop(self) -> bool:
        return self.loop_end is not None

    def playable(self) -> List[int]:
        """Return the indices of events that fall inside the loop region."""

        if self.loop_end is None:
            return list(range(len(self.events)))
        return [i for i, (t, _payload) in enumerate(self.events) if t < self.loop_end]


class Transport:
    """Heap ordered event dispatcher with per-part looping.

    @param realtime (bool): When ``True`` :meth:`start` launches an asyncio
        task advancing the transport with wall time. The caller must then be
        running inside an event loop.
    @param tick (float): Interval in seconds between realtime clock updates.
    """

    def __init__(self, realtime: bool = True, tick: float = 0.005) -> None:
        if tick <= 0:
            raise ValueError("tick must be positive")
        self.realtime = realtime
        self.tick = tick
        self.position = 0.0
        self.state = "stopped"
        self.parts: Dict[str, Part] = {}
        self._heap: List[HeapEntry] = []
        self._generation = 0
        self._clock_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Timeline configuration
    # ------------------------------------------------------------------
    def add_part(
        self,
        name: str,
        events: Sequence[Tuple[float, Any]],
        callback: EventCallback,
        *,
        loop_end: Optional[float] = None,
    ) -> Part:
        """Register ``events`` under ``name`` and return the new part.

        ``loop_end`` values that are not positive disable looping.
        """

        if loop_end is not None and loop_end <= 0:
            logger.debug("Ignoring non-positive loop end %s for %s", loop_end, name)
            loop_end = None
        part = Part(
            name=name,
            events=sorted(events, key=lambda event: event[0]),
            callback=callback,
            loop_end=loop_end,
            rank=LAYER_RANK.get(name, len(LAYER_RANK)),
        )
        self.parts[name] = part
        if self.state == "started":
            self._seed(part, self.position)
        return part

    def set_loop(self, loop_end: Optional[float]) -> None:
        """Apply ``loop_end`` to every registered part."""

        if loop_end is not None and loop_end <= 0:
            loop_end = None
        for part in self.parts.values():
            part.loop_end = loop_end

    @property
    def pending(self) -> int:
        """Number of events waiting to fire."""

        return len(self._heap)

    def _seed(self, part: Part, offset: float) -> None:
        for index in part.playable():
            when = part.events[index][0] + offset
            heapq.heappush(self._heap, (when, part.rank, index, 0, part.name))

    # ------------------------------------------------------------------
    # Clock control
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Queue every part from the current position and start the clock."""

        if self.state == "started":
            return
        self._heap = []
        for part in self.parts.values():
            self._seed(part, self.position)
        self.state = "started"
        logger.debug("Transport started with %d pending events", len(self._heap))
        if self.realtime:
            self._clock_task = asyncio.get_running_loop().create_task(self._run_clock())

    def stop(self) -> None:
        """Stop the clock, drop pending events and rewind to zero."""

        self._stop_clock()
        self._heap = []
        self.position = 0.0
        self.state = "stopped"

    def cancel(self) -> None:
        """Remove every part and pending event.

        A dispatch loop running when ``cancel`` is called stops before it
        fires another event.
        """

        self._generation += 1
        self._heap = []
        self.parts = {}

    def _stop_clock(self) -> None:
        if self._clock_task is not None:
            self._clock_task.cancel()
            self._clock_task = None

    async def _run_clock(self) -> None:
        last = time.monotonic()
        while True:
            await asyncio.sleep(self.tick)
            now = time.monotonic()
            self.advance(now - last)
            last = now

    def advance(self, seconds: float) -> int:
        """Move the clock forward by ``seconds`` and fire due events.

        @param seconds (float): Amount of transport time to advance.
        @returns int: Number of events dispatched.
        """

        if seconds < 0:
            raise ValueError("seconds must not be negative")
        if self.state != "started":
            return 0
        target = self.position + seconds
        generation = self._generation
        fired = 0
        while self._heap and self._heap[0][0] <= target:
            when, rank, index, iteration, name = heapq.heappop(self._heap)
            part = self.parts.get(name)
            if part is None:
                continue
            self.position = when
            if part.loop_end is not None:
                heapq.heappush(
                    self._heap,
                    (when + part.loop_end, rank, index, iteration + 1, name),
                )
            _event_time, payload = part.events[index]
            try:
                part.callback(when, payload)
            except Exception:
                logger.exception("Event callback for part %s failed at %.3fs", name, when)
            fired += 1
            if generation != self._generation or self.state != "started":
                return fired
        self.position = target
        return fired


_transport: Optional[Transport] = None


def get_transport() -> Transport:
    """Return the process-wide :class:`Transport`, creating it on first use."""

    global _transport
    if _transport is None:
        _transport = Transport()
    return _transport


def reset_transport() -> None:
    """Stop and discard the process-wide transport."""

    global _transport
    if _transport is not None:
        _transport.stop()
        _transport.cancel()
    _transport = None
