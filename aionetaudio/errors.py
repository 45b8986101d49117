"""Exceptions raised by aionetaudio."""

from __future__ import annotations


class NetworkAudioError(Exception):
    """Base class for all aionetaudio errors."""


class ClipCollision(NetworkAudioError):
    """Two clip names map to the same clip id.

    Peers derive clip ids independently, so a collision means they can no
    longer agree on which clip a command refers to. Raised at build time only.
    """


class UnknownClip(NetworkAudioError, LookupError):
    """A clip id received over the wire is not part of the local catalog."""


class ClipNotRegistered(NetworkAudioError, LookupError):
    """A clip handle passed to the API is not part of the local catalog."""


class MalformedCommand(NetworkAudioError, ValueError):
    """A wire message could not be decoded into a command."""


class UnknownSource(NetworkAudioError, LookupError):
    """A command targets a source id that is not registered on this peer."""


class DuplicateSource(NetworkAudioError):
    """A source id was registered twice."""


class LoopAlreadyRunning(NetworkAudioError, RuntimeError):
    """Random clip looping was started on a source that is already looping."""


class InvalidLink(NetworkAudioError, ValueError):
    """A link request that can never be applied, such as a source linked to itself."""
