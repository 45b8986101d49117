"""Registries of live audio sources and the links between them."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, NamedTuple

from .errors import DuplicateSource, InvalidLink, UnknownSource

if TYPE_CHECKING:
    from .source import NetworkAudioSource

logger = logging.getLogger(__name__)

SELF_DAMPING = 1.0


class SourceRegistry:
    """Table from source id to the local NetworkAudioSource."""

    _sources: dict[int, NetworkAudioSource]

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._sources = {}

    def add(self, source: NetworkAudioSource) -> None:
        """Register ``source`` under its source id."""
        if source.source_id in self._sources:
            raise DuplicateSource(f"Source {source.source_id} is already registered")
        self._sources[source.source_id] = source
        logger.debug("Registered source %d", source.source_id)

    def remove(self, source_id: int) -> NetworkAudioSource:
        """Unregister and return the source with ``source_id``."""
        try:
            source = self._sources.pop(source_id)
        except KeyError:
            raise UnknownSource(f"Source {source_id} is not registered") from None
        logger.debug("Unregistered source %d", source_id)
        return source

    def get(self, source_id: int) -> NetworkAudioSource:
        """Return the source with ``source_id``, raising UnknownSource if absent."""
        try:
            return self._sources[source_id]
        except KeyError:
            raise UnknownSource(f"Source {source_id} is not registered") from None

    def clear(self) -> None:
        """Drop all sources."""
        self._sources.clear()

    def __contains__(self, source_id: object) -> bool:
        """Return True if a source with ``source_id`` is registered."""
        return source_id in self._sources

    def __iter__(self) -> Iterator[NetworkAudioSource]:
        """Iterate over a snapshot of the registered sources."""
        return iter(list(self._sources.values()))

    def __len__(self) -> int:
        """Return the number of registered sources."""
        return len(self._sources)


class Link(NamedTuple):
    """A directed link from a source to one of the sources it drives."""

    target_id: int
    damping: float


class LinkGraph:
    """
    Directed, weighted links between sources.

    Every source implicitly drives itself with damping 1.0. That edge is not
    stored and can neither be overridden nor removed.
    """

    _edges: dict[int, dict[int, float]]

    def __init__(self) -> None:
        """Initialize a graph without links."""
        self._edges = {}

    def add_link(
        self, from_id: int, to_id: int, damping: float, *, bidirectional: bool = False
    ) -> None:
        """
        Link ``from_id`` to ``to_id``.

        Commands on ``from_id`` are then also applied to ``to_id``, with volumes
        scaled by ``damping`` (1.0 = no damping, 0.0 = silence). Damping is not
        clamped. Adding an existing link replaces its damping. A bidirectional
        request adds two independent edges.
        """
        if from_id == to_id:
            raise InvalidLink(f"Source {from_id} cannot be linked to itself")
        self._edges.setdefault(from_id, {})[to_id] = damping
        logger.debug("Linked source %d -> %d (damping %.3f)", from_id, to_id, damping)
        if bidirectional:
            self.add_link(to_id, from_id, damping)

    def remove_link(self, from_id: int, to_id: int, *, bidirectional: bool = False) -> None:
        """Remove the link ``from_id -> to_id`` if it exists."""
        targets = self._edges.get(from_id)
        if targets is not None and targets.pop(to_id, None) is not None:
            logger.debug("Unlinked source %d -> %d", from_id, to_id)
            if not targets:
                del self._edges[from_id]
        if bidirectional:
            self.remove_link(to_id, from_id)

    def remove_source(self, source_id: int) -> None:
        """Remove every link from or to ``source_id``."""
        self._edges.pop(source_id, None)
        for from_id in list(self._edges):
            self.remove_link(from_id, source_id)

    def damping(self, from_id: int, to_id: int) -> float | None:
        """Return the damping of ``from_id -> to_id``, or None if not linked."""
        if from_id == to_id:
            return SELF_DAMPING
        return self._edges.get(from_id, {}).get(to_id)

    def fan_out(self, source_id: int) -> list[Link]:
        """
        Return every link of ``source_id``, starting with the implicit self link.

        The result is a snapshot, so the graph may change while it is iterated.
        """
        links = [Link(source_id, SELF_DAMPING)]
        for target_id, damping in self._edges.get(source_id, {}).items():
            links.append(Link(target_id, damping))
        return links

    def clear(self) -> None:
        """Drop all links."""
        self._edges.clear()
