"""Audio device interface consumed by networked audio sources."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

REFERENCE_SAMPLE_RATE = 44_100
"""Rate at which Play delays are expressed, in samples per second."""


class AudioDevice(Protocol):
    """The local sound output driven by a NetworkAudioSource.

    Implemented by whatever integration layer renders audio. Clips are opaque
    handles taken from the clip catalog.
    """

    volume: float
    clip: Any
    doppler_level: float
    ignore_listener_pause: bool
    ignore_listener_volume: bool
    loop: bool
    pitch: float
    time: float
    time_samples: int

    @property
    def is_playing(self) -> bool:
        """Return True while the default clip is playing."""
        ...

    def play(self, clip: Any, delay_ticks: int) -> None:
        """Play ``clip`` after ``delay_ticks`` samples at the reference rate."""
        ...

    def play_one_shot(self, clip: Any, volume_scale: float) -> None:
        """Play ``clip`` once, scaled by ``volume_scale``."""
        ...

    def play_delayed(self, seconds: float) -> None:
        """Play the default clip after ``seconds``."""
        ...

    def play_scheduled(self, absolute_time: float) -> None:
        """Play the default clip at ``absolute_time`` on the device clock."""
        ...

    def pause(self) -> None:
        """Pause playback."""
        ...

    def stop(self) -> None:
        """Stop playback."""
        ...

    def unpause(self) -> None:
        """Resume paused playback."""
        ...


@dataclass
class MemoryAudioDevice:
    """
    AudioDevice that keeps state in memory and records every call.

    Used by tests and by the CLI, where playback is only reported in the log.
    """

    name: str = "device"
    volume: float = 1.0
    clip: Any = None
    doppler_level: float = 1.0
    ignore_listener_pause: bool = False
    ignore_listener_volume: bool = False
    loop: bool = False
    pitch: float = 1.0
    time: float = 0.0
    time_samples: int = 0
    playing: bool = False
    paused: bool = False
    calls: list[tuple[Any, ...]] = field(default_factory=list)
    """Recorded (method, *args) tuples of every playback call."""

    @property
    def is_playing(self) -> bool:
        """Return True while the default clip is playing."""
        return self.playing and not self.paused

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        logger.debug("[%s] %s%s", self.name, call[0], call[1:])

    def play(self, clip: Any, delay_ticks: int) -> None:
        """Play ``clip`` after ``delay_ticks`` samples."""
        self._record("play", clip, delay_ticks)
        self.playing = clip is not None
        self.paused = False

    def play_one_shot(self, clip: Any, volume_scale: float) -> None:
        """Play ``clip`` once; does not affect is_playing."""
        self._record("play_one_shot", clip, volume_scale)

    def play_delayed(self, seconds: float) -> None:
        """Play the default clip after ``seconds``."""
        self._record("play_delayed", seconds)
        self.playing = self.clip is not None
        self.paused = False

    def play_scheduled(self, absolute_time: float) -> None:
        """Play the default clip at ``absolute_time``."""
        self._record("play_scheduled", absolute_time)
        self.playing = self.clip is not None
        self.paused = False

    def pause(self) -> None:
        """Pause playback."""
        self._record("pause")
        self.paused = self.playing

    def stop(self) -> None:
        """Stop playback."""
        self._record("stop")
        self.playing = False
        self.paused = False

    def unpause(self) -> None:
        """Resume paused playback."""
        self._record("unpause")
        self.paused = False

    def calls_named(self, method: str) -> list[tuple[Any, ...]]:
        """Return the recorded calls of ``method``, without the method name."""
        return [call[1:] for call in self.calls if call[0] == method]
