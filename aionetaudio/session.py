"""Build a ready to use dispatcher from a SessionConfig."""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable

from .clips import load_directory_catalog
from .context import NetworkAudioContext
from .device import AudioDevice, MemoryAudioDevice
from .dispatcher import CommandDispatcher
from .models.config import SessionConfig
from .scheduler import FadeScheduler
from .transport import Transport

logger = logging.getLogger(__name__)

DeviceFactory = Callable[[int], AudioDevice]


def _memory_device(source_id: int) -> AudioDevice:
    return MemoryAudioDevice(name=f"source-{source_id}")


def build_catalog(config: SessionConfig) -> list[tuple[str, Hashable]]:
    """Collect the clip catalog described by ``config``.

    Clips found in ``clips_dir`` use their path as handle, explicit clip names
    use the name itself.
    """
    catalog: list[tuple[str, Hashable]] = []
    if config.clips_dir is not None:
        catalog.extend(load_directory_catalog(config.clips_dir))
    catalog.extend((name, name) for name in config.clips)
    return catalog


def build_dispatcher(
    config: SessionConfig,
    transport: Transport,
    device_factory: DeviceFactory = _memory_device,
) -> CommandDispatcher:
    """
    Create the context, sources and links of ``config`` on top of ``transport``.

    Raises:
        ClipCollision: If the configured catalog has colliding clip names.
    """
    context = NetworkAudioContext.from_catalog(build_catalog(config), FadeScheduler())
    dispatcher = CommandDispatcher(context, transport)
    for source_id in config.sources:
        dispatcher.create_source(source_id, device_factory(source_id))
    for link in config.links:
        context.add_link(
            link.from_source, link.to_source, link.damping, bidirectional=link.bidirectional
        )
    logger.info(
        "Session ready: %d clips, %d sources, %d links",
        len(context.clips),
        len(context.sources),
        len(config.links),
    )
    return dispatcher
