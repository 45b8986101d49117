"""Models for enum types used by aionetaudio."""

from dataclasses import dataclass
from enum import Enum

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Discriminator


# Base message classes for the WebSocket handshake
@dataclass
class PeerMessage(DataClassORJSONMixin):
    """Base class for messages sent by a peer to the relay."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass
class RelayMessage(DataClassORJSONMixin):
    """Base class for messages sent by the relay to a peer."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


# Enums


class CommandKind(Enum):
    """Wire identifier of each command.

    The numeric values are part of the wire format and must never be reordered.
    """

    PAUSE = 0
    STOP = 1
    UNPAUSE = 2
    PLAY = 3
    """Play with a delay expressed in samples at a 44.1 kHz reference rate."""
    PLAY_DELAYED = 4
    PLAY_SCHEDULED = 5
    """Play at an absolute time on the audio device's clock."""
    PLAY_ONE_SHOT = 6
    VOLUME = 7
    FADE_OUT = 8
    FADE_IN = 9
    CLIP = 10
    DOPPLER_LEVEL = 11
    IGNORE_LISTENER_PAUSE = 12
    IGNORE_LISTENER_VOLUME = 13
    LOOP = 14
    PITCH = 15
    TIME = 16
    TIME_SAMPLES = 17
    LINK = 18
    """Link one source to another on every peer."""


class FadeKind(Enum):
    """Direction of a running fade."""

    FADING_OUT = "fading_out"
    FADING_IN = "fading_in"
