"""The narrow transport interface the replication core depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

ReceiveCallback = Callable[[bytes, str], None]
"""Called with (data, sender_peer_id) for every command frame delivered locally."""


class Transport(ABC):
    """
    Ordered, reliable delivery of command frames between peers.

    Exactly one peer of a session is authoritative. Its broadcasts reach every
    peer, itself included, with the authoritative peer as sender.
    """

    _receive_callback: ReceiveCallback | None = None

    @property
    @abstractmethod
    def peer_id(self) -> str:
        """Identifier of the local peer."""

    @property
    @abstractmethod
    def is_authoritative(self) -> bool:
        """Return True if the local peer is the authoritative relay."""

    @abstractmethod
    def broadcast(self, data: bytes) -> None:
        """Send ``data`` to every peer, the local one included.

        Only valid on the authoritative peer.
        """

    @abstractmethod
    def send_to_authority(self, data: bytes) -> None:
        """Send ``data`` to the authoritative peer only."""

    def set_receive_callback(self, callback: ReceiveCallback | None) -> None:
        """Register the function receiving inbound command frames."""
        self._receive_callback = callback

    def _deliver(self, data: bytes, sender: str) -> None:
        """Hand an inbound frame to the registered callback."""
        if self._receive_callback is not None:
            self._receive_callback(data, sender)
