"""Transports carrying command frames between peers."""

__all__ = [
    "LocalHub",
    "LocalTransport",
    "PeerClient",
    "ReceiveCallback",
    "RelayServer",
    "Transport",
]

from .base import ReceiveCallback, Transport
from .local import LocalHub, LocalTransport
from .websocket import PeerClient, RelayServer
