"""
Playback commands and their binary wire encoding.

Every command is an immutable dataclass carrying the id of the source it was
issued on plus a fixed payload. On the wire a command is laid out as::

    source_id (uint32) | kind (uint8) | payload

All values are little endian. The payload layout is fixed per kind, so a
decoder can reject any message whose payload length does not match exactly.

Commands also serialize to JSON (discriminated on ``type``), which is used for
logging and for scripted command files; the JSON form is never sent between
peers.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields
from typing import Literal, NamedTuple

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Discriminator

from aionetaudio.errors import MalformedCommand

from .types import CommandKind

# Command header (little-endian): source_id(4) + kind(1) = 5 bytes
COMMAND_HEADER_FORMAT = "<IB"
COMMAND_HEADER_SIZE = struct.calcsize(COMMAND_HEADER_FORMAT)

_FLOAT32 = struct.Struct("<f")


def _to_float32(value: float) -> float:
    """Return ``value`` rounded to the nearest single precision float."""
    return _FLOAT32.unpack(_FLOAT32.pack(value))[0]


@dataclass(frozen=True)
class Command(DataClassORJSONMixin):
    """Base class for playback commands."""

    source_id: int
    """Identifier of the audio source the command was issued on."""

    KIND = None
    PAYLOAD_FORMAT = ""
    """struct format of the payload, without byte order prefix."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)

    def __post_init__(self) -> None:
        """Normalise payload values to what survives the wire."""
        for name, code in zip(self.payload_fields(), self.PAYLOAD_FORMAT, strict=True):
            value = getattr(self, name)
            if code == "f":
                object.__setattr__(self, name, _to_float32(value))
            elif code == "?":
                object.__setattr__(self, name, bool(value))

    @classmethod
    def payload_fields(cls) -> tuple[str, ...]:
        """Names of the payload fields in wire order."""
        return tuple(f.name for f in fields(cls) if f.name not in ("source_id", "type"))

    @classmethod
    def payload_size(cls) -> int:
        """Exact payload size in bytes for this kind."""
        return struct.calcsize("<" + cls.PAYLOAD_FORMAT)

    def payload_values(self) -> tuple[object, ...]:
        """Payload values in wire order."""
        return tuple(getattr(self, name) for name in self.payload_fields())


@dataclass(frozen=True)
class Pause(Command):
    """Pause playback."""

    type: Literal["pause"] = "pause"

    KIND = CommandKind.PAUSE


@dataclass(frozen=True)
class Stop(Command):
    """Stop playback."""

    type: Literal["stop"] = "stop"

    KIND = CommandKind.STOP


@dataclass(frozen=True)
class UnPause(Command):
    """Resume paused playback."""

    type: Literal["unpause"] = "unpause"

    KIND = CommandKind.UNPAUSE


@dataclass(frozen=True)
class Play(Command):
    """Play the current clip."""

    delay_ticks: int = 0
    """Delay in samples at a 44.1 kHz reference rate (44100 delays by one second)."""
    type: Literal["play"] = "play"

    KIND = CommandKind.PLAY
    PAYLOAD_FORMAT = "Q"


@dataclass(frozen=True)
class PlayDelayed(Command):
    """Play the current clip after a delay."""

    delay_seconds: float
    type: Literal["play_delayed"] = "play_delayed"

    KIND = CommandKind.PLAY_DELAYED
    PAYLOAD_FORMAT = "f"


@dataclass(frozen=True)
class PlayScheduled(Command):
    """Play the current clip at an absolute time on the device clock."""

    absolute_time: float
    type: Literal["play_scheduled"] = "play_scheduled"

    KIND = CommandKind.PLAY_SCHEDULED
    PAYLOAD_FORMAT = "d"


@dataclass(frozen=True)
class PlayOneShot(Command):
    """Play a clip once, on top of whatever is playing."""

    clip_id: int
    volume_scale: float = 1.0
    """Scale applied to the source volume for this clip (0-1)."""
    type: Literal["play_one_shot"] = "play_one_shot"

    KIND = CommandKind.PLAY_ONE_SHOT
    PAYLOAD_FORMAT = "if"


@dataclass(frozen=True)
class SetVolume(Command):
    """Set the source volume (0.0 to 1.0)."""

    volume: float
    type: Literal["volume"] = "volume"

    KIND = CommandKind.VOLUME
    PAYLOAD_FORMAT = "f"


@dataclass(frozen=True)
class FadeOut(Command):
    """Fade the source out to silence and stop it."""

    duration: float
    """Fade time in seconds."""
    type: Literal["fade_out"] = "fade_out"

    KIND = CommandKind.FADE_OUT
    PAYLOAD_FORMAT = "f"


@dataclass(frozen=True)
class FadeIn(Command):
    """Fade the source from its current volume to a target volume."""

    target_volume: float
    duration: float
    """Fade time in seconds."""
    type: Literal["fade_in"] = "fade_in"

    KIND = CommandKind.FADE_IN
    PAYLOAD_FORMAT = "ff"


@dataclass(frozen=True)
class SetClip(Command):
    """Set the default clip of the source."""

    clip_id: int
    type: Literal["clip"] = "clip"

    KIND = CommandKind.CLIP
    PAYLOAD_FORMAT = "i"


@dataclass(frozen=True)
class SetDopplerLevel(Command):
    """Set the doppler scale of the source."""

    level: float
    type: Literal["doppler_level"] = "doppler_level"

    KIND = CommandKind.DOPPLER_LEVEL
    PAYLOAD_FORMAT = "f"


@dataclass(frozen=True)
class SetIgnoreListenerPause(Command):
    """Allow the source to keep playing while the listener is paused."""

    flag: bool
    type: Literal["ignore_listener_pause"] = "ignore_listener_pause"

    KIND = CommandKind.IGNORE_LISTENER_PAUSE
    PAYLOAD_FORMAT = "?"


@dataclass(frozen=True)
class SetIgnoreListenerVolume(Command):
    """Make the source ignore the listener volume."""

    flag: bool
    type: Literal["ignore_listener_volume"] = "ignore_listener_volume"

    KIND = CommandKind.IGNORE_LISTENER_VOLUME
    PAYLOAD_FORMAT = "?"


@dataclass(frozen=True)
class SetLoop(Command):
    """Enable or disable looping of the current clip."""

    flag: bool
    type: Literal["loop"] = "loop"

    KIND = CommandKind.LOOP
    PAYLOAD_FORMAT = "?"


@dataclass(frozen=True)
class SetPitch(Command):
    """Set the pitch of the source."""

    pitch: float
    type: Literal["pitch"] = "pitch"

    KIND = CommandKind.PITCH
    PAYLOAD_FORMAT = "f"


@dataclass(frozen=True)
class SetTime(Command):
    """Seek to a playback position in seconds."""

    seconds: float
    type: Literal["time"] = "time"

    KIND = CommandKind.TIME
    PAYLOAD_FORMAT = "f"


@dataclass(frozen=True)
class SetTimeSamples(Command):
    """Seek to a playback position in PCM samples."""

    samples: int
    type: Literal["time_samples"] = "time_samples"

    KIND = CommandKind.TIME_SAMPLES
    PAYLOAD_FORMAT = "i"


@dataclass(frozen=True)
class AddLink(Command):
    """Make ``target_id`` follow the source, with volumes scaled by ``damping``."""

    target_id: int
    damping: float
    bidirectional: bool = False
    type: Literal["link"] = "link"

    KIND = CommandKind.LINK
    PAYLOAD_FORMAT = "If?"


AnyCommand = (
    Pause
    | Stop
    | UnPause
    | Play
    | PlayDelayed
    | PlayScheduled
    | PlayOneShot
    | SetVolume
    | FadeOut
    | FadeIn
    | SetClip
    | SetDopplerLevel
    | SetIgnoreListenerPause
    | SetIgnoreListenerVolume
    | SetLoop
    | SetPitch
    | SetTime
    | SetTimeSamples
)
"""Union of every playback command, for exhaustive matching."""

COMMAND_TYPES: dict[CommandKind, type[Command]] = {
    command_type.KIND: command_type
    for command_type in (
        Pause,
        Stop,
        UnPause,
        Play,
        PlayDelayed,
        PlayScheduled,
        PlayOneShot,
        SetVolume,
        FadeOut,
        FadeIn,
        SetClip,
        SetDopplerLevel,
        SetIgnoreListenerPause,
        SetIgnoreListenerVolume,
        SetLoop,
        SetPitch,
        SetTime,
        SetTimeSamples,
        AddLink,
    )
}


class CommandHeader(NamedTuple):
    """Header structure for command messages."""

    source_id: int  # source identifier (I - unsigned int)
    kind: int  # command kind (B - unsigned char)


def unpack_command_header(data: bytes) -> CommandHeader:
    """
    Unpack the command header from bytes.

    Args:
        data: Message bytes, at least the 5 header bytes

    Returns:
        CommandHeader with typed fields

    Raises:
        MalformedCommand: If data is shorter than the header
    """
    if len(data) < COMMAND_HEADER_SIZE:
        raise MalformedCommand(
            f"Expected at least {COMMAND_HEADER_SIZE} header bytes, got {len(data)}"
        )
    source_id, kind = struct.unpack_from(COMMAND_HEADER_FORMAT, data)
    return CommandHeader(source_id=source_id, kind=kind)


def encode_command(command: Command) -> bytes:
    """
    Encode a command into its wire form.

    Raises:
        ValueError: If ``command`` has no wire kind or a value does not fit its
            wire field
    """
    if command.KIND is None:
        raise ValueError(f"{type(command).__name__} has no wire kind and cannot be encoded")
    try:
        return struct.pack(
            COMMAND_HEADER_FORMAT + command.PAYLOAD_FORMAT,
            command.source_id,
            command.KIND.value,
            *command.payload_values(),
        )
    except struct.error as err:
        raise ValueError(f"Cannot encode {command!r}: {err}") from err


def decode_command(data: bytes) -> Command:
    """
    Decode a wire message into a command.

    Raises:
        MalformedCommand: If the header is truncated, the kind is unknown or the
            payload length does not match the kind's fixed layout
    """
    header = unpack_command_header(data)
    try:
        command_type = COMMAND_TYPES[CommandKind(header.kind)]
    except ValueError as err:
        raise MalformedCommand(f"Unknown command kind: {header.kind}") from err

    payload = data[COMMAND_HEADER_SIZE:]
    expected = command_type.payload_size()
    if len(payload) != expected:
        raise MalformedCommand(
            f"{command_type.__name__} payload must be {expected} bytes, got {len(payload)}"
        )
    values = struct.unpack("<" + command_type.PAYLOAD_FORMAT, payload)
    return command_type(header.source_id, *values)
