"""The per-source facade used by game or application code."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .device import AudioDevice
from .errors import ClipNotRegistered, InvalidLink
from .models.commands import (
    AddLink,
    Command,
    FadeIn,
    FadeOut,
    Pause,
    Play,
    PlayDelayed,
    PlayOneShot,
    PlayScheduled,
    SetClip,
    SetDopplerLevel,
    SetIgnoreListenerPause,
    SetIgnoreListenerVolume,
    SetLoop,
    SetPitch,
    SetTime,
    SetTimeSamples,
    SetVolume,
    Stop,
    UnPause,
)
from .scheduler import RandomClipLoop

# The cyclic import is not an issue during runtime, so hide it
# pyright: reportImportCycles=none
if TYPE_CHECKING:
    from .context import NetworkAudioContext
    from .dispatcher import CommandDispatcher

logger = logging.getLogger(__name__)


class NetworkAudioSource:
    """
    An audio source whose playback is replicated to every peer.

    Setters and playback methods never touch the local device. They send a
    command, and the change becomes visible once the command has gone through
    the authoritative relay and come back. Getters read the local device, so a
    getter called right after a setter may still return the previous value.
    """

    _dispatcher: CommandDispatcher
    _source_id: int
    _device: AudioDevice
    _nominal_volume: float
    _logger: logging.Logger

    def __init__(
        self, dispatcher: CommandDispatcher, source_id: int, device: AudioDevice
    ) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use CommandDispatcher.create_source instead.
        """
        if not 0 <= source_id <= 0xFFFFFFFF:
            raise ValueError(f"Source id must fit in 32 bits, got {source_id}")
        self._dispatcher = dispatcher
        self._source_id = source_id
        self._device = device
        self._nominal_volume = device.volume
        self._logger = logger.getChild(str(source_id))

    @property
    def source_id(self) -> int:
        """The identifier shared by every replica of this source."""
        return self._source_id

    @property
    def device(self) -> AudioDevice:
        """The local audio device this source drives."""
        return self._device

    @property
    def context(self) -> NetworkAudioContext:
        """The context this source is registered in."""
        return self._dispatcher.context

    @property
    def nominal_volume(self) -> float:
        """The last explicitly set volume, baseline for fades and linked sources."""
        return self._nominal_volume

    def _set_nominal_volume(self, volume: float) -> None:
        """Update the nominal volume. For use by CommandDispatcher only."""
        self._nominal_volume = volume

    def _send(self, command: Command) -> None:
        self._dispatcher.send(command)

    def _clip_id(self, clip: Any) -> int | None:
        try:
            return self.context.clips.resolve_handle(clip)
        except ClipNotRegistered:
            self._logger.warning("Clip %r is not registered, ignoring call", clip)
            return None

    # ---------------------------------------------------------------------
    # Properties
    # ---------------------------------------------------------------------
    @property
    def volume(self) -> float:
        """The volume of the audio source (0.0 to 1.0)."""
        return self._device.volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._send(SetVolume(self._source_id, value))

    @property
    def clip(self) -> Any:
        """The default clip to play."""
        return self._device.clip

    @clip.setter
    def clip(self, value: Any) -> None:
        clip_id = self._clip_id(value)
        if clip_id is not None:
            self._send(SetClip(self._source_id, clip_id))

    @property
    def doppler_level(self) -> float:
        """The doppler scale of the source."""
        return self._device.doppler_level

    @doppler_level.setter
    def doppler_level(self, value: float) -> None:
        self._send(SetDopplerLevel(self._source_id, value))

    @property
    def ignore_listener_pause(self) -> bool:
        """Keep playing while the listener is paused, e.g. for pause menu sounds."""
        return self._device.ignore_listener_pause

    @ignore_listener_pause.setter
    def ignore_listener_pause(self, value: bool) -> None:
        self._send(SetIgnoreListenerPause(self._source_id, value))

    @property
    def ignore_listener_volume(self) -> bool:
        """Ignore the volume of the listener."""
        return self._device.ignore_listener_volume

    @ignore_listener_volume.setter
    def ignore_listener_volume(self, value: bool) -> None:
        self._send(SetIgnoreListenerVolume(self._source_id, value))

    @property
    def loop(self) -> bool:
        """Whether the default clip loops."""
        return self._device.loop

    @loop.setter
    def loop(self, value: bool) -> None:
        self._send(SetLoop(self._source_id, value))

    @property
    def pitch(self) -> float:
        """The pitch of the source."""
        return self._device.pitch

    @pitch.setter
    def pitch(self, value: float) -> None:
        self._send(SetPitch(self._source_id, value))

    @property
    def time(self) -> float:
        """Playback position in seconds."""
        return self._device.time

    @time.setter
    def time(self, value: float) -> None:
        self._send(SetTime(self._source_id, value))

    @property
    def time_samples(self) -> int:
        """Playback position in PCM samples."""
        return self._device.time_samples

    @time_samples.setter
    def time_samples(self, value: int) -> None:
        self._send(SetTimeSamples(self._source_id, value))

    @property
    def is_playing(self) -> bool:
        """Is the clip playing right now."""
        return self._device.is_playing

    # ---------------------------------------------------------------------
    # Playback
    # ---------------------------------------------------------------------
    def pause(self) -> None:
        """Pause playing the clip."""
        self._send(Pause(self._source_id))

    def stop(self) -> None:
        """Stop playing the clip."""
        self._send(Stop(self._source_id))

    def unpause(self) -> None:
        """Resume paused playback."""
        self._send(UnPause(self._source_id))

    def play(self, delay_ticks: int = 0) -> None:
        """
        Play the clip with an optional delay.

        Args:
            delay_ticks: Delay in samples at a 44.1 kHz reference rate, so
                ``play(44100)`` starts exactly one second later.
        """
        self._send(Play(self._source_id, delay_ticks))

    def play_delayed(self, delay_seconds: float) -> None:
        """Play the clip after ``delay_seconds``."""
        self._send(PlayDelayed(self._source_id, delay_seconds))

    def play_scheduled(self, absolute_time: float) -> None:
        """Play the clip at ``absolute_time`` on the audio device's clock."""
        self._send(PlayScheduled(self._source_id, absolute_time))

    def play_one_shot(self, clip: Any, volume_scale: float = 1.0) -> None:
        """Play ``clip`` once, scaling the source volume by ``volume_scale`` (0-1)."""
        clip_id = self._clip_id(clip)
        if clip_id is not None:
            self._send(PlayOneShot(self._source_id, clip_id, volume_scale))

    def fade_out(self, duration: float) -> None:
        """Fade out over ``duration`` seconds, then stop."""
        self._send(FadeOut(self._source_id, duration))

    def fade_in(self, target_volume: float, duration: float) -> None:
        """Fade from the current volume to ``target_volume`` over ``duration`` seconds."""
        self._send(FadeIn(self._source_id, target_volume, duration))

    def play_and_loop(self, clip: Any, volume: float) -> None:
        """Set ``clip`` as looping default clip and play it at ``volume``."""
        clip_id = self._clip_id(clip)
        if clip_id is None:
            return
        self._send(SetClip(self._source_id, clip_id))
        self._send(SetLoop(self._source_id, True))
        self._send(SetVolume(self._source_id, volume))
        self._send(Play(self._source_id))

    def loop_random_clips(
        self, min_interval: float, max_interval: float, *clips: Any
    ) -> RandomClipLoop:
        """
        Endlessly play one of ``clips`` at random intervals.

        Each clip is sent as a one shot, so every peer hears it. Only the peer
        that started the loop runs it.

        Args:
            min_interval: Minimum seconds until the next clip.
            max_interval: Maximum seconds until the next clip.
            clips: Clips to choose from.

        Raises:
            LoopAlreadyRunning: If this source is already looping random clips.
        """
        return self.context.scheduler.loop_random_clips(self, min_interval, max_interval, clips)

    def stop_loop_random_clips(self) -> None:
        """Stop playing random clips."""
        self.context.scheduler.stop_loop_random_clips(self._source_id)

    def add_linked_source(
        self, other: NetworkAudioSource, damping: float, bidirectional: bool = False
    ) -> None:
        """
        Make ``other`` play everything this source plays, damped by ``damping``.

        The link is replicated like any command, so it takes effect on every
        connected peer once it came back from the relay. Commands sent after
        this call are fanned out over the new link.

        Args:
            other: Source that should be linked.
            damping: Damping when passing sounds. 1.0 = no damping, 0.0 = silence.
            bidirectional: Also link ``other`` back to this source.

        Raises:
            InvalidLink: If ``other`` is this source.
        """
        if other.source_id == self._source_id:
            raise InvalidLink(f"Source {self._source_id} cannot be linked to itself")
        self._send(AddLink(self._source_id, other.source_id, damping, bidirectional))

    def __repr__(self) -> str:
        """Return a debug representation."""
        return f"NetworkAudioSource(source_id={self._source_id})"
