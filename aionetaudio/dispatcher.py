"""
Relay and apply playback commands.

Locally issued commands are only ever sent, never applied directly: on the
authoritative peer they are broadcast to everyone including the issuer, on
any other peer they go to the authoritative peer, which broadcasts them. A
command therefore takes effect on every peer, the issuer included, exactly
once and only when it comes back from the relay.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, assert_never, cast

from .errors import MalformedCommand, NetworkAudioError
from .models.commands import (
    AddLink,
    AnyCommand,
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
    decode_command,
    encode_command,
)
from .source import NetworkAudioSource

if TYPE_CHECKING:
    from .context import NetworkAudioContext
    from .device import AudioDevice
    from .transport import Transport

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Sends, relays and applies the commands of one peer."""

    context: NetworkAudioContext
    _transport: Transport

    def __init__(self, context: NetworkAudioContext, transport: Transport) -> None:
        """Attach the dispatcher to ``transport``'s receive path."""
        self.context = context
        self._transport = transport
        self.relayed_count = 0
        self.applied_count = 0
        self.dropped_count = 0
        transport.set_receive_callback(self._on_receive)

    @property
    def transport(self) -> Transport:
        """The transport commands are sent over."""
        return self._transport

    def create_source(self, source_id: int, device: AudioDevice) -> NetworkAudioSource:
        """Create the networked source ``source_id`` driving ``device`` and register it."""
        source = NetworkAudioSource(self, source_id, device)
        self.context.add_source(source)
        return source

    def close(self) -> None:
        """Detach from the transport and close the context."""
        self._transport.set_receive_callback(None)
        self.context.close()

    # ---------------------------------------------------------------------
    # Sending
    # ---------------------------------------------------------------------
    def send(self, command: Command) -> None:
        """Send a locally issued command. Its effect only happens on reception."""
        data = encode_command(command)
        logger.debug("Sending %s", command)
        if self._transport.is_authoritative:
            self._transport.broadcast(data)
        else:
            self._transport.send_to_authority(data)

    # ---------------------------------------------------------------------
    # Receiving
    # ---------------------------------------------------------------------
    def _on_receive(self, data: bytes, sender: str) -> None:
        try:
            command = decode_command(data)
        except MalformedCommand as err:
            self.dropped_count += 1
            logger.warning("Dropping malformed command from %s: %s", sender, err)
            return

        if self._transport.is_authoritative and sender != self._transport.peer_id:
            # Applied once the broadcast comes back to us
            logger.debug("Relaying %s from %s", type(command).__name__, sender)
            self.relayed_count += 1
            self._transport.broadcast(data)
            return

        self.apply(command)

    def apply(self, command: Command) -> bool:
        """
        Apply ``command`` to its source and every linked source.

        AddLink adds its link instead of being fanned out. Unknown sources and
        clips drop the command with a warning.
        Returns True if the command was applied.
        """
        try:
            self._apply(cast("AnyCommand | AddLink", command))
        except NetworkAudioError as err:
            self.dropped_count += 1
            logger.warning("Dropping %s: %s", type(command).__name__, err)
            return False
        self.applied_count += 1
        return True

    def _apply(self, command: AnyCommand | AddLink) -> None:
        if isinstance(command, AddLink):
            # Links are not fanned out themselves
            self.context.add_link(
                command.source_id,
                command.target_id,
                command.damping,
                bidirectional=command.bidirectional,
            )
            return
        origin = self.context.sources.get(command.source_id)
        clip = None
        if isinstance(command, PlayOneShot | SetClip):
            clip = self.context.clips.resolve_id(command.clip_id)

        for target_id, damping in self.context.links.fan_out(origin.source_id):
            if target_id not in self.context.sources:
                logger.debug("Linked source %d is gone, skipping", target_id)
                continue
            target = self.context.sources.get(target_id)
            self._apply_to(command, origin, target, damping, clip)

    def _apply_to(
        self,
        command: AnyCommand,
        origin: NetworkAudioSource,
        target: NetworkAudioSource,
        damping: float,
        clip: Any,
    ) -> None:
        """Apply the view of ``command`` that ``target`` gets through a link."""
        device = target.device
        match command:
            case Pause():
                device.pause()
            case Stop():
                device.stop()
            case UnPause():
                device.unpause()
            case Play(delay_ticks=delay_ticks):
                device.volume = origin.nominal_volume * damping
                device.play(device.clip, delay_ticks)
            case PlayDelayed(delay_seconds=delay_seconds):
                device.play_delayed(delay_seconds)
            case PlayScheduled(absolute_time=absolute_time):
                device.play_scheduled(absolute_time)
            case PlayOneShot(volume_scale=volume_scale):
                device.play_one_shot(clip, volume_scale * damping)
            case SetVolume(volume=volume):
                device.volume = volume * damping
                if target is origin:
                    target._set_nominal_volume(volume)  # noqa: SLF001
            case FadeOut(duration=duration):
                self.context.scheduler.fade_out(
                    target, duration, origin.nominal_volume * damping
                )
            case FadeIn(target_volume=target_volume, duration=duration):
                self.context.scheduler.fade_in(
                    target, target_volume * damping, duration, device.volume
                )
            case SetClip():
                device.clip = clip
            case SetDopplerLevel(level=level):
                device.doppler_level = level
            case SetIgnoreListenerPause(flag=flag):
                device.ignore_listener_pause = flag
            case SetIgnoreListenerVolume(flag=flag):
                device.ignore_listener_volume = flag
            case SetLoop(flag=flag):
                device.loop = flag
            case SetPitch(pitch=pitch):
                device.pitch = pitch
            case SetTime(seconds=seconds):
                device.time = seconds
            case SetTimeSamples(samples=samples):
                device.time_samples = samples
            case _:
                assert_never(command)
