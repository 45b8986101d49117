"""Shared fixtures: peers wired through an in-process LocalHub."""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import pytest

from aionetaudio.context import NetworkAudioContext
from aionetaudio.device import MemoryAudioDevice
from aionetaudio.dispatcher import CommandDispatcher
from aionetaudio.scheduler import FadeScheduler
from aionetaudio.source import NetworkAudioSource
from aionetaudio.transport import LocalHub

CLIPS = ("creak", "slam", "whoosh")


@dataclass
class Peer:
    """One simulated peer: its dispatcher plus the devices of its sources."""

    dispatcher: CommandDispatcher
    devices: dict[int, MemoryAudioDevice]

    @property
    def context(self) -> NetworkAudioContext:
        return self.dispatcher.context

    def source(self, source_id: int) -> NetworkAudioSource:
        return self.context.sources.get(source_id)

    def device(self, source_id: int) -> MemoryAudioDevice:
        return self.devices[source_id]


@pytest.fixture
def hub() -> LocalHub:
    """An empty in-process network."""
    return LocalHub()


@pytest.fixture
def make_peer(hub: LocalHub) -> Callable[..., Peer]:
    """Factory connecting a new peer with its own catalog and sources to ``hub``."""

    def _make(
        peer_id: str,
        *,
        authoritative: bool = False,
        sources: Iterable[int] = (1, 2),
        clips: Iterable[str] = CLIPS,
        seed: int | None = None,
    ) -> Peer:
        transport = hub.connect(peer_id, authoritative=authoritative)
        scheduler = FadeScheduler(random.Random(seed) if seed is not None else None)
        context = NetworkAudioContext.from_catalog([(name, name) for name in clips], scheduler)
        dispatcher = CommandDispatcher(context, transport)
        devices = {}
        for source_id in sources:
            devices[source_id] = MemoryAudioDevice(name=f"{peer_id}-{source_id}")
            dispatcher.create_source(source_id, devices[source_id])
        return Peer(dispatcher, devices)

    return _make


@pytest.fixture
def authority(make_peer: Callable[..., Peer]) -> Peer:
    """The authoritative peer."""
    return make_peer("authority", authoritative=True)


@pytest.fixture
def peer(make_peer: Callable[..., Peer]) -> Peer:
    """A regular peer."""
    return make_peer("peer")
