"""
Deterministic mapping between clip names and clip ids.

Peers never exchange their catalogs. Each peer derives the id of a clip from
its name with a stable hash, so the same name yields the same id on every
peer as long as the catalogs agree on names.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Hashable, Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Generic, TypeVar

from .errors import ClipCollision, ClipNotRegistered, UnknownClip

logger = logging.getLogger(__name__)

H = TypeVar("H", bound=Hashable)

DEFAULT_CLIP_SUFFIXES = (".wav", ".ogg", ".mp3", ".flac", ".aif", ".aiff")


def clip_id_for(name: str) -> int:
    """Return the clip id for ``name`` as a signed 32 bit integer.

    Uses BLAKE2b rather than ``hash()``, which is salted per process.
    """
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=4).digest()
    return int.from_bytes(digest, "little", signed=True)


class ClipRegistry(Generic[H]):
    """Frozen bidirectional mapping between clip ids and clip handles."""

    _id_to_handle: Mapping[int, H]
    _handle_to_id: Mapping[H, int]
    _id_to_name: Mapping[int, str]

    def __init__(
        self,
        id_to_handle: dict[int, H],
        handle_to_id: dict[H, int],
        id_to_name: dict[int, str],
    ) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use ClipRegistry.build instead.
        """
        self._id_to_handle = MappingProxyType(id_to_handle)
        self._handle_to_id = MappingProxyType(handle_to_id)
        self._id_to_name = MappingProxyType(id_to_name)

    @classmethod
    def build(cls, catalog: Iterable[tuple[str, H]]) -> ClipRegistry[H]:
        """
        Build the registry from a ``(name, handle)`` catalog.

        Entries are processed in name order so that diagnostics number them
        identically on every peer.

        Raises:
            ClipCollision: If two entries map to the same clip id, including the
                same name listed twice.
        """
        id_to_handle: dict[int, H] = {}
        handle_to_id: dict[H, int] = {}
        id_to_name: dict[int, str] = {}
        for index, (name, handle) in enumerate(sorted(catalog, key=lambda entry: entry[0])):
            clip_id = clip_id_for(name)
            if clip_id in id_to_handle:
                raise ClipCollision(
                    f"Clip id collision between {id_to_name[clip_id]!r} and {name!r}, "
                    "rename one of the clips"
                )
            if handle in handle_to_id:
                raise ClipCollision(f"Clip handle registered twice: {name!r}")
            logger.debug("Registered clip #%d %r as %d", index, name, clip_id)
            id_to_handle[clip_id] = handle
            handle_to_id[handle] = clip_id
            id_to_name[clip_id] = name
        logger.info("Clip registry built with %d clips", len(id_to_handle))
        return cls(id_to_handle, handle_to_id, id_to_name)

    def resolve_id(self, clip_id: int) -> H:
        """Return the handle of ``clip_id``, raising UnknownClip if absent."""
        try:
            return self._id_to_handle[clip_id]
        except KeyError:
            raise UnknownClip(f"Clip id {clip_id} is not registered") from None

    def resolve_handle(self, handle: H) -> int:
        """Return the id of ``handle``, raising ClipNotRegistered if absent."""
        try:
            return self._handle_to_id[handle]
        except (KeyError, TypeError):
            raise ClipNotRegistered(f"Clip {handle!r} is not registered") from None

    def id_for(self, name: str) -> int:
        """Return the id of the clip registered under ``name``."""
        clip_id = clip_id_for(name)
        if self._id_to_name.get(clip_id) != name:
            raise UnknownClip(f"Clip {name!r} is not registered")
        return clip_id

    def resolve_name(self, name: str) -> H:
        """Return the handle registered under ``name``."""
        return self._id_to_handle[self.id_for(name)]

    def name_of(self, clip_id: int) -> str:
        """Return the name of ``clip_id``."""
        try:
            return self._id_to_name[clip_id]
        except KeyError:
            raise UnknownClip(f"Clip id {clip_id} is not registered") from None

    @property
    def names(self) -> list[str]:
        """Registered clip names, in name order."""
        return sorted(self._id_to_name.values())

    def __len__(self) -> int:
        """Return the number of registered clips."""
        return len(self._id_to_handle)

    def __contains__(self, handle: object) -> bool:
        """Return True if ``handle`` is a registered clip handle."""
        try:
            return handle in self._handle_to_id
        except TypeError:
            return False


def load_directory_catalog(
    path: str | Path, suffixes: Iterable[str] = DEFAULT_CLIP_SUFFIXES
) -> list[tuple[str, Path]]:
    """
    Collect ``(name, path)`` pairs for every clip file below ``path``.

    The clip name is the file stem, so ``sounds/door/slam.wav`` is ``"slam"``.
    """
    root = Path(path)
    if not root.is_dir():
        raise NotADirectoryError(f"Clip directory does not exist: {root}")
    wanted = {suffix.lower() for suffix in suffixes}
    catalog = [
        (file.stem, file)
        for file in sorted(root.rglob("*"))
        if file.is_file() and file.suffix.lower() in wanted
    ]
    logger.debug("Found %d clips in %s", len(catalog), root)
    return catalog
