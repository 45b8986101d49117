"""aionetaudio: audio sources whose playback is replicated across networked peers."""

from __future__ import annotations

# Re-export the public API for easy import
from aionetaudio.clips import ClipRegistry, clip_id_for, load_directory_catalog
from aionetaudio.context import (
    ContextEvent,
    LinkAddedEvent,
    NetworkAudioContext,
    SourceAddedEvent,
    SourceRemovedEvent,
)
from aionetaudio.device import AudioDevice, MemoryAudioDevice
from aionetaudio.dispatcher import CommandDispatcher
from aionetaudio.errors import (
    ClipCollision,
    ClipNotRegistered,
    DuplicateSource,
    InvalidLink,
    LoopAlreadyRunning,
    MalformedCommand,
    NetworkAudioError,
    UnknownClip,
    UnknownSource,
)
from aionetaudio.models.config import LinkConfig, RelayConfig, SessionConfig
from aionetaudio.scheduler import FadeScheduler
from aionetaudio.session import build_dispatcher
from aionetaudio.source import NetworkAudioSource
from aionetaudio.transport import LocalHub, PeerClient, RelayServer, Transport

__all__ = [
    "AudioDevice",
    "ClipCollision",
    "ClipNotRegistered",
    "ClipRegistry",
    "CommandDispatcher",
    "ContextEvent",
    "DuplicateSource",
    "FadeScheduler",
    "InvalidLink",
    "LinkAddedEvent",
    "LinkConfig",
    "LocalHub",
    "LoopAlreadyRunning",
    "MalformedCommand",
    "MemoryAudioDevice",
    "NetworkAudioContext",
    "NetworkAudioError",
    "NetworkAudioSource",
    "PeerClient",
    "RelayConfig",
    "RelayServer",
    "SessionConfig",
    "SourceAddedEvent",
    "SourceRemovedEvent",
    "Transport",
    "UnknownClip",
    "UnknownSource",
    "build_dispatcher",
    "clip_id_for",
    "load_directory_catalog",
]
