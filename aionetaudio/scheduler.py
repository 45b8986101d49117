"""
Timed local effects: linear fades and randomized clip looping.

Tasks are advanced by ``FadeScheduler.tick`` with the elapsed time since the
previous tick, so they behave the same at any tick rate. ``FadeScheduler.start``
drives the ticks from the running asyncio event loop; tests call ``tick``
directly.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Sequence
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from .errors import LoopAlreadyRunning
from .models.config import DEFAULT_TICK_INTERVAL
from .models.types import FadeKind

if TYPE_CHECKING:
    from .source import NetworkAudioSource

logger = logging.getLogger(__name__)


class FadeTask:
    """A linear volume ramp on one source."""

    __slots__ = (
        "cancelled",
        "duration",
        "elapsed",
        "finished",
        "kind",
        "source",
        "start_volume",
        "target_volume",
    )

    def __init__(
        self,
        source: NetworkAudioSource,
        kind: FadeKind,
        start_volume: float,
        target_volume: float,
        duration: float,
    ) -> None:
        self.source = source
        self.kind = kind
        self.start_volume = start_volume
        self.target_volume = target_volume
        self.duration = duration
        self.elapsed = 0.0
        self.cancelled = False
        self.finished = False

    def cancel(self) -> None:
        """Stop the fade at the next tick, leaving the volume where it is."""
        self.cancelled = True

    @property
    def active(self) -> bool:
        """Return True until the fade finished or was cancelled."""
        return not (self.cancelled or self.finished)

    def step(self, dt: float) -> bool:
        """Advance the fade by ``dt`` seconds. Return True once it is over."""
        if not self.active:
            return True
        self.elapsed += dt
        device = self.source.device
        if self.duration <= 0 or self.elapsed >= self.duration:
            self._complete()
            return True
        progress = self.elapsed / self.duration
        device.volume = self.start_volume + (self.target_volume - self.start_volume) * progress
        return False

    def _complete(self) -> None:
        device = self.source.device
        self.finished = True
        if self.kind is FadeKind.FADING_OUT:
            device.volume = self.target_volume
            device.stop()
            # Restore the pre-fade level for subsequent plain playback
            device.volume = self.start_volume
        else:
            device.volume = self.target_volume
        logger.debug("Source %d finished %s", self.source.source_id, self.kind.value)


class RandomClipLoop:
    """Endlessly plays random clips on one source at random intervals."""

    __slots__ = (
        "_remaining",
        "_rng",
        "cancelled",
        "clips",
        "max_interval",
        "min_interval",
        "source",
    )

    def __init__(
        self,
        source: NetworkAudioSource,
        min_interval: float,
        max_interval: float,
        clips: Sequence[Any],
        rng: random.Random,
    ) -> None:
        if not clips:
            raise ValueError("At least one clip is required")
        if min_interval < 0 or max_interval < min_interval:
            raise ValueError(f"Invalid interval range [{min_interval}, {max_interval}]")
        if max_interval <= 0:
            raise ValueError("max_interval must be positive")
        self.source = source
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.clips = list(clips)
        self.cancelled = False
        self._rng = rng
        self._remaining = 0.0

    def cancel(self) -> None:
        """Stop looping at the next tick."""
        self.cancelled = True

    @property
    def remaining(self) -> float:
        """Seconds until the next clip is played."""
        return self._remaining

    def step(self, dt: float) -> bool:
        """
        Advance by ``dt`` seconds, playing a clip if one became due.

        At most one clip plays per step, and the next interval starts from
        now, so a long step after a stalled event loop does not play a burst.
        """
        if self.cancelled:
            return True
        self._remaining -= dt
        if self._remaining <= 0:
            # Goes through the network like any other one shot
            self.source.play_one_shot(self._rng.choice(self.clips))
            self._remaining = self._rng.uniform(self.min_interval, self.max_interval)
        return self.cancelled


class FadeScheduler:
    """Runs at most one fade and one random clip loop per source."""

    _fades: dict[int, FadeTask]
    _loops: dict[int, RandomClipLoop]
    _driver_task: asyncio.Task[None] | None

    def __init__(self, rng: random.Random | None = None) -> None:
        """Initialize the scheduler. ``rng`` is used by random clip loops."""
        self._fades = {}
        self._loops = {}
        self._rng = rng or random.Random()
        self._driver_task = None

    # ---------------------------------------------------------------------
    # Fades
    # ---------------------------------------------------------------------
    def fade_out(
        self, source: NetworkAudioSource, duration: float, start_volume: float
    ) -> FadeTask:
        """Fade ``source`` from ``start_volume`` to silence, then stop it."""
        return self._start_fade(FadeTask(source, FadeKind.FADING_OUT, start_volume, 0.0, duration))

    def fade_in(
        self,
        source: NetworkAudioSource,
        target_volume: float,
        duration: float,
        start_volume: float,
    ) -> FadeTask:
        """Fade ``source`` from ``start_volume`` to ``target_volume``."""
        return self._start_fade(
            FadeTask(source, FadeKind.FADING_IN, start_volume, target_volume, duration)
        )

    def _start_fade(self, task: FadeTask) -> FadeTask:
        source_id = task.source.source_id
        previous = self._fades.get(source_id)
        if previous is not None and previous.active:
            logger.debug("Replacing %s on source %d", previous.kind.value, source_id)
            previous.cancel()
        self._fades[source_id] = task
        task.source.device.volume = task.start_volume
        logger.debug(
            "Source %d %s from %.3f to %.3f over %.2fs",
            source_id,
            task.kind.value,
            task.start_volume,
            task.target_volume,
            task.duration,
        )
        return task

    def fade_for(self, source_id: int) -> FadeTask | None:
        """Return the current fade of ``source_id``, if any."""
        return self._fades.get(source_id)

    def cancel_fade(self, source_id: int) -> None:
        """Cancel the current fade of ``source_id``, if any."""
        task = self._fades.get(source_id)
        if task is not None:
            task.cancel()

    # ---------------------------------------------------------------------
    # Random clip loops
    # ---------------------------------------------------------------------
    def loop_random_clips(
        self,
        source: NetworkAudioSource,
        min_interval: float,
        max_interval: float,
        clips: Sequence[Any],
    ) -> RandomClipLoop:
        """
        Start playing random ``clips`` on ``source`` until stopped.

        The first clip plays immediately.

        Raises:
            LoopAlreadyRunning: If ``source`` is already looping random clips.
        """
        current = self._loops.get(source.source_id)
        if current is not None and not current.cancelled:
            raise LoopAlreadyRunning(
                f"Source {source.source_id} is already looping random clips, stop it first"
            )
        loop = RandomClipLoop(source, min_interval, max_interval, clips, self._rng)
        self._loops[source.source_id] = loop
        logger.debug(
            "Source %d looping %d clips every %.2f-%.2fs",
            source.source_id,
            len(loop.clips),
            min_interval,
            max_interval,
        )
        loop.step(0.0)
        return loop

    def stop_loop_random_clips(self, source_id: int) -> bool:
        """Stop the random clip loop of ``source_id``. Return False if none ran."""
        loop = self._loops.pop(source_id, None)
        if loop is None or loop.cancelled:
            return False
        loop.cancel()
        logger.debug("Source %d stopped looping random clips", source_id)
        return True

    def is_looping(self, source_id: int) -> bool:
        """Return True if ``source_id`` is looping random clips."""
        loop = self._loops.get(source_id)
        return loop is not None and not loop.cancelled

    # ---------------------------------------------------------------------
    # Driving
    # ---------------------------------------------------------------------
    def tick(self, dt: float) -> None:
        """Advance every task by ``dt`` seconds."""
        for table in (self._fades, self._loops):
            for source_id, task in list(table.items()):
                try:
                    over = task.step(dt)
                except Exception:
                    logger.exception("Error in timed task of source %d", source_id)
                    over = True
                if over and table.get(source_id) is task:
                    del table[source_id]

    def cancel_source(self, source_id: int) -> None:
        """Cancel the fade and the random clip loop of ``source_id``."""
        self.cancel_fade(source_id)
        self.stop_loop_random_clips(source_id)

    def cancel_all(self) -> None:
        """Cancel every task."""
        for task in self._fades.values():
            task.cancel()
        for loop in self._loops.values():
            loop.cancel()
        self._fades.clear()
        self._loops.clear()

    @property
    def running(self) -> bool:
        """Return True while the asyncio driver is running."""
        return self._driver_task is not None and not self._driver_task.done()

    def start(self, interval: float = DEFAULT_TICK_INTERVAL) -> None:
        """Drive ticks from the running event loop every ``interval`` seconds."""
        if self.running:
            logger.debug("Scheduler is already running")
            return
        loop = asyncio.get_running_loop()
        self._driver_task = loop.create_task(self._run(interval))

    async def stop(self) -> None:
        """Stop the asyncio driver. Tasks keep their state."""
        if self._driver_task is None:
            return
        self._driver_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._driver_task
        self._driver_task = None

    async def _run(self, interval: float) -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        while True:
            await asyncio.sleep(interval)
            now = loop.time()
            self.tick(now - last)
            last = now
