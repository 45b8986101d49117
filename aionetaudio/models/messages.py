"""
Handshake messages exchanged over the WebSocket transport.

A peer opens the connection with ``peer/hello``; the relay answers with
``relay/hello``. After that the connection only carries binary command
frames (see :mod:`aionetaudio.models.commands`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import PeerMessage, RelayMessage

PROTOCOL_VERSION = 1


# Peer -> Relay: peer/hello
@dataclass
class PeerHelloPayload(DataClassORJSONMixin):
    """Information about a connecting peer."""

    peer_id: str
    """Uniquely identifies the peer on the relay."""
    name: str
    """Friendly name of the peer."""
    version: int
    """Protocol version that the peer implements."""


@dataclass
class PeerHelloMessage(PeerMessage):
    """Message sent by the peer to identify itself."""

    payload: PeerHelloPayload
    type: Literal["peer/hello"] = "peer/hello"


# Relay -> Peer: relay/hello
@dataclass
class RelayHelloPayload(DataClassORJSONMixin):
    """Information about the authoritative relay."""

    peer_id: str
    """Identifier of the authoritative peer."""
    name: str
    """Friendly name of the relay."""
    version: int
    """Protocol version of the relay."""


@dataclass
class RelayHelloMessage(RelayMessage):
    """Message sent by the relay in response to peer/hello."""

    payload: RelayHelloPayload
    type: Literal["relay/hello"] = "relay/hello"
