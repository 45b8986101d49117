"""Session configuration loaded from JSON."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

DEFAULT_RELAY_PORT = 8937
DEFAULT_RELAY_PATH = "/netaudio"
DEFAULT_TICK_INTERVAL = 1 / 60


@dataclass
class LinkConfig(DataClassORJSONMixin):
    """A declared link between two sources."""

    from_source: int
    """Source whose commands are propagated."""
    to_source: int
    """Source that receives the propagated commands."""
    damping: float = 1.0
    """Volume damping when passing commands. 1.0 = no damping, 0.0 = silence."""
    bidirectional: bool = False
    """Also link to_source back to from_source with the same damping."""


@dataclass
class RelayConfig(DataClassORJSONMixin):
    """Where the authoritative relay listens."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_RELAY_PORT
    path: str = DEFAULT_RELAY_PATH


@dataclass
class SessionConfig(DataClassORJSONMixin):
    """Everything a peer needs to join a session.

    All peers of a session must use the same clip catalog, source ids and links.
    """

    clips_dir: str | None = None
    """Directory scanned for clip files. Clip names are the file stems."""
    clips: list[str] = field(default_factory=list)
    """Explicit clip names, used in addition to clips_dir."""
    sources: list[int] = field(default_factory=list)
    """Ids of the sources created on every peer."""
    links: list[LinkConfig] = field(default_factory=list)
    tick_interval: float = DEFAULT_TICK_INTERVAL
    """Seconds between scheduler ticks driving fades and random loops."""
    relay: RelayConfig = field(default_factory=RelayConfig)

    class Config(BaseConfig):
        """Config for parsing json configuration."""

        omit_none = True

    def __post_init__(self) -> None:
        """Validate field values."""
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")
        if len(set(self.sources)) != len(self.sources):
            raise ValueError("Source ids must be unique")

    @classmethod
    def load(cls, path: str | Path) -> SessionConfig:
        """Load a configuration file."""
        return cls.from_json(Path(path).read_bytes())
