"""Shared state of the networked audio sources of one process."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .clips import ClipRegistry
from .registry import LinkGraph, SourceRegistry
from .scheduler import FadeScheduler

if TYPE_CHECKING:
    from .source import NetworkAudioSource

logger = logging.getLogger(__name__)


class ContextEvent:
    """Base event type used by NetworkAudioContext.add_event_listener()."""


@dataclass
class SourceAddedEvent(ContextEvent):
    """A source came online."""

    source_id: int


@dataclass
class SourceRemovedEvent(ContextEvent):
    """A source was torn down."""

    source_id: int


@dataclass
class LinkAddedEvent(ContextEvent):
    """A link between two sources was added or its damping changed."""

    from_source: int
    to_source: int
    damping: float


class NetworkAudioContext:
    """
    Registries shared by the dispatcher and every source of this process.

    The clip registry is frozen. Sources and links are only changed through
    this object, from the thread that dispatches commands.
    """

    clips: ClipRegistry[Any]
    sources: SourceRegistry
    links: LinkGraph
    scheduler: FadeScheduler
    _event_cbs: list[Callable[[ContextEvent], None]]

    def __init__(self, clips: ClipRegistry[Any], scheduler: FadeScheduler | None = None) -> None:
        """Initialize a context around an already built clip registry."""
        self.clips = clips
        self.sources = SourceRegistry()
        self.links = LinkGraph()
        self.scheduler = scheduler or FadeScheduler()
        self._event_cbs = []
        self._closed = False

    @classmethod
    def from_catalog(
        cls, catalog: Iterable[tuple[str, Hashable]], scheduler: FadeScheduler | None = None
    ) -> NetworkAudioContext:
        """Build the clip registry from ``catalog`` and wrap it in a new context."""
        return cls(ClipRegistry.build(catalog), scheduler)

    @property
    def closed(self) -> bool:
        """Return True once close() was called."""
        return self._closed

    def add_source(self, source: NetworkAudioSource) -> None:
        """Register a source that came online."""
        if self._closed:
            raise RuntimeError("Context is closed")
        self.sources.add(source)
        self._signal_event(SourceAddedEvent(source.source_id))

    def remove_source(self, source_id: int) -> NetworkAudioSource:
        """
        Tear down a source.

        Cancels its fade and random clip loop and drops every link from or to it.
        """
        source = self.sources.remove(source_id)
        self.scheduler.cancel_source(source_id)
        self.links.remove_source(source_id)
        logger.debug("Removed source %d", source_id)
        self._signal_event(SourceRemovedEvent(source_id))
        return source

    def add_link(
        self, from_id: int, to_id: int, damping: float, *, bidirectional: bool = False
    ) -> None:
        """
        Link two registered sources on this peer only, see LinkGraph.add_link.

        NetworkAudioSource.add_linked_source links them on every peer.
        """
        self.sources.get(from_id)
        self.sources.get(to_id)
        self.links.add_link(from_id, to_id, damping, bidirectional=bidirectional)
        self._signal_event(LinkAddedEvent(from_id, to_id, damping))
        if bidirectional:
            self._signal_event(LinkAddedEvent(to_id, from_id, damping))

    def close(self) -> None:
        """Cancel every timed task and drop all sources and links."""
        if self._closed:
            return
        self._closed = True
        self.scheduler.cancel_all()
        self.links.clear()
        self.sources.clear()
        self._event_cbs.clear()
        logger.debug("Context closed")

    def add_event_listener(self, callback: Callable[[ContextEvent], None]) -> Callable[[], None]:
        """Register a callback to listen for source and link changes.

        Returns a function to remove the listener.
        """
        self._event_cbs.append(callback)
        return lambda: self._event_cbs.remove(callback)

    def _signal_event(self, event: ContextEvent) -> None:
        for cb in list(self._event_cbs):
            try:
                cb(event)
            except Exception:
                logger.exception("Error in context event listener %s", cb)
