"""mDNS advertisement and discovery of the authoritative relay."""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import TYPE_CHECKING, cast

from zeroconf import ServiceInfo
from zeroconf.asyncio import AsyncServiceBrowser, AsyncZeroconf

from .models.config import DEFAULT_RELAY_PATH

if TYPE_CHECKING:
    from zeroconf import ServiceListener

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_netaudio-relay._tcp.local."


def build_relay_url(host: str, port: int, properties: dict[bytes, bytes | None]) -> str:
    """Return the WebSocket URL a relay announced with ``properties`` listens on."""
    raw_path = properties.get(b"path") or b""
    path = raw_path.decode("utf-8", "ignore") or DEFAULT_RELAY_PATH
    path = path if path.startswith("/") else f"/{path}"
    if ":" in host:
        host = f"[{host}]"
    return f"ws://{host}:{port}{path}"


class _RelayListener:
    """Keeps track of the relays currently announced on the network."""

    def __init__(self, zeroconf: AsyncZeroconf) -> None:
        self._zeroconf = zeroconf
        self._relays: dict[str, str] = {}
        self._found = asyncio.Event()
        self._lookups: set[asyncio.Task[None]] = set()

    @property
    def relays(self) -> dict[str, str]:
        """Announced relays, service name to URL."""
        return dict(self._relays)

    async def wait(self) -> str:
        while not self._relays:
            self._found.clear()
            await self._found.wait()
        return next(iter(self._relays.values()))

    async def _lookup(self, service_type: str, name: str) -> None:
        info = await self._zeroconf.async_get_service_info(service_type, name)
        if info is None or info.port is None or not info.parsed_addresses():
            logger.debug("Relay %s has no usable address", name)
            return
        url = build_relay_url(info.parsed_addresses()[0], info.port, info.properties)
        logger.debug("Relay %s announced at %s", name, url)
        self._relays[name] = url
        self._found.set()

    def _start_lookup(self, service_type: str, name: str) -> None:
        lookup = asyncio.get_running_loop().create_task(self._lookup(service_type, name))
        self._lookups.add(lookup)
        lookup.add_done_callback(self._lookups.discard)

    # ServiceListener interface, called by the browser
    def add_service(self, _zc: object, service_type: str, name: str) -> None:
        self._start_lookup(service_type, name)

    def update_service(self, _zc: object, service_type: str, name: str) -> None:
        self._start_lookup(service_type, name)

    def remove_service(self, _zc: object, _service_type: str, name: str) -> None:
        if self._relays.pop(name, None) is not None:
            logger.debug("Relay %s went offline", name)

    def cancel_lookups(self) -> None:
        for lookup in self._lookups:
            lookup.cancel()


class RelayDiscovery:
    """Browses the network for relays until stopped."""

    _zeroconf: AsyncZeroconf | None
    _browser: AsyncServiceBrowser | None
    _listener: _RelayListener | None

    def __init__(self) -> None:
        """Initialize discovery; nothing happens before start()."""
        self._zeroconf = None
        self._browser = None
        self._listener = None

    async def start(self) -> None:
        """Start browsing for relays."""
        self._zeroconf = AsyncZeroconf()
        self._listener = _RelayListener(self._zeroconf)
        try:
            self._browser = AsyncServiceBrowser(
                self._zeroconf.zeroconf, SERVICE_TYPE, cast("ServiceListener", self._listener)
            )
        except Exception:
            await self.stop()
            raise

    async def wait_for_first_relay(self) -> str:
        """Return the URL of a relay, waiting until one is announced."""
        if self._listener is None:
            raise RuntimeError("Discovery not started. Call start() first.")
        return await self._listener.wait()

    def current_url(self) -> str | None:
        """Return the URL of an announced relay, or None if there is none."""
        if self._listener is None:
            return None
        return next(iter(self._listener.relays.values()), None)

    async def stop(self) -> None:
        """Stop browsing and release the mDNS socket."""
        if self._listener is not None:
            self._listener.cancel_lookups()
            self._listener = None
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        if self._zeroconf is not None:
            await self._zeroconf.async_close()
            self._zeroconf = None


class RelayAdvertiser:
    """Announces the local relay via mDNS."""

    def __init__(self, name: str, port: int, path: str = DEFAULT_RELAY_PATH) -> None:
        """Prepare the announcement of a relay called ``name``."""
        self._info = ServiceInfo(
            SERVICE_TYPE,
            f"{name}.{SERVICE_TYPE}",
            port=port,
            properties={"path": path},
            parsed_addresses=[_local_address()],
        )
        self._zeroconf: AsyncZeroconf | None = None

    async def start(self) -> None:
        """Register the relay service."""
        self._zeroconf = AsyncZeroconf()
        await self._zeroconf.async_register_service(self._info)
        logger.info("Advertising relay as %s", self._info.name)

    async def stop(self) -> None:
        """Unregister the relay service."""
        if self._zeroconf is None:
            return
        await self._zeroconf.async_unregister_service(self._info)
        await self._zeroconf.async_close()
        self._zeroconf = None


def _local_address() -> str:
    """Best effort guess of the address peers can reach this host on."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            # No packet is sent, this only selects the outgoing interface
            sock.connect(("192.0.2.1", 9))
            return cast("str", sock.getsockname()[0])
        except OSError:
            return "127.0.0.1"
