"""In-process transport connecting peers through a shared hub."""

from __future__ import annotations

import logging
from collections import deque

from .base import Transport

logger = logging.getLogger(__name__)

MAX_FLUSH_ROUNDS = 10_000


class LocalHub:
    """
    Routes frames between LocalTransports living in the same process.

    Frames are queued and only delivered by ``flush``, which mimics a network
    that delivers on the next turn of the event loop and keeps delivery order.
    """

    def __init__(self) -> None:
        """Initialize a hub without peers."""
        self._peers: dict[str, LocalTransport] = {}
        self._authority_id: str | None = None
        self._queue: deque[tuple[str, bytes, str]] = deque()

    def connect(self, peer_id: str, *, authoritative: bool = False) -> LocalTransport:
        """Create the transport of a new peer."""
        if peer_id in self._peers:
            raise ValueError(f"Peer {peer_id} is already connected")
        if authoritative:
            if self._authority_id is not None:
                raise ValueError(f"Peer {self._authority_id} is already authoritative")
            self._authority_id = peer_id
        transport = LocalTransport(self, peer_id)
        self._peers[peer_id] = transport
        logger.debug("Peer %s connected (authoritative=%s)", peer_id, authoritative)
        return transport

    def disconnect(self, peer_id: str) -> None:
        """Remove a peer. Frames already queued for it are dropped."""
        self._peers.pop(peer_id, None)
        if self._authority_id == peer_id:
            self._authority_id = None
        logger.debug("Peer %s disconnected", peer_id)

    @property
    def authority_id(self) -> str | None:
        """Identifier of the authoritative peer, if one is connected."""
        return self._authority_id

    @property
    def pending(self) -> int:
        """Number of queued frames."""
        return len(self._queue)

    def _enqueue(self, recipient: str, data: bytes, sender: str) -> None:
        self._queue.append((recipient, data, sender))

    def _broadcast(self, data: bytes, sender: str) -> None:
        for peer_id in self._peers:
            self._enqueue(peer_id, data, sender)

    def _send_to_authority(self, data: bytes, sender: str) -> None:
        if self._authority_id is None:
            logger.warning("No authoritative peer connected, dropping frame from %s", sender)
            return
        self._enqueue(self._authority_id, data, sender)

    def flush(self) -> int:
        """Deliver queued frames, including ones queued while delivering.

        Returns the number of delivered frames.
        """
        delivered = 0
        while self._queue:
            if delivered >= MAX_FLUSH_ROUNDS:
                raise RuntimeError("Frames keep arriving, is a relay looping?")
            recipient, data, sender = self._queue.popleft()
            transport = self._peers.get(recipient)
            if transport is None:
                continue
            transport._deliver(data, sender)  # noqa: SLF001
            delivered += 1
        return delivered


class LocalTransport(Transport):
    """A peer's end of a LocalHub."""

    def __init__(self, hub: LocalHub, peer_id: str) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use LocalHub.connect instead.
        """
        self._hub = hub
        self._peer_id = peer_id

    @property
    def peer_id(self) -> str:
        """Identifier of the local peer."""
        return self._peer_id

    @property
    def is_authoritative(self) -> bool:
        """Return True if this peer is the hub's authoritative peer."""
        return self._hub.authority_id == self._peer_id

    def broadcast(self, data: bytes) -> None:
        """Queue ``data`` for every peer of the hub."""
        if not self.is_authoritative:
            raise RuntimeError("Only the authoritative peer can broadcast")
        self._hub._broadcast(data, self._peer_id)  # noqa: SLF001

    def send_to_authority(self, data: bytes) -> None:
        """Queue ``data`` for the authoritative peer."""
        self._hub._send_to_authority(data, self._peer_id)  # noqa: SLF001
