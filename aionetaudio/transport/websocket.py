"""
WebSocket transport for networked audio sources.

The authoritative peer runs a RelayServer; every other peer connects to it
with a PeerClient. After a JSON hello handshake, connections only carry binary
command frames.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from types import TracebackType
from typing import Self, cast

from aiohttp import (
    ClientSession,
    ClientWebSocketResponse,
    WSCloseCode,
    WSMessage,
    WSMsgType,
    web,
)

from aionetaudio.models.config import DEFAULT_RELAY_PATH
from aionetaudio.models.messages import (
    PROTOCOL_VERSION,
    PeerHelloMessage,
    PeerHelloPayload,
    RelayHelloMessage,
    RelayHelloPayload,
)
from aionetaudio.models.types import PeerMessage, RelayMessage

from .base import Transport

MAX_PENDING_MSG = 512
HELLO_TIMEOUT = 10

logger = logging.getLogger(__name__)


class _PeerConnection:
    """A peer connected to the RelayServer."""

    _relay: RelayServer
    _request: web.Request
    _wsock: web.WebSocketResponse
    _peer_info: PeerHelloPayload | None = None
    _refused: bool = False
    """Set when the hello announced an id that is already in use."""
    _writer_task: asyncio.Task[None] | None = None
    """Drains _to_write into the socket."""
    _to_write: asyncio.Queue[RelayMessage | bytes]
    _logger: logging.Logger

    def __init__(self, relay: RelayServer, request: web.Request) -> None:
        self._relay = relay
        self._request = request
        self._wsock = web.WebSocketResponse(heartbeat=55)
        self._to_write = asyncio.Queue(maxsize=MAX_PENDING_MSG)
        self._logger = logger.getChild(f"unknown-{request.remote}")

    @property
    def peer_id(self) -> str:
        """The identifier the peer announced in its hello."""
        assert self._peer_info  # Peer should be fully initialized by now
        return self._peer_info.peer_id

    @property
    def ready(self) -> bool:
        """Return True once the hello handshake completed."""
        return self._peer_info is not None and not self._wsock.closed

    def send_message(self, message: RelayMessage | bytes) -> None:
        """Enqueue a JSON message or a binary command frame for this peer."""
        try:
            self._to_write.put_nowait(message)
        except asyncio.QueueFull:
            self._logger.error("Write queue full, closing connection")
            if self._writer_task is not None:
                _ = self._writer_task.cancel()

    async def handle(self) -> web.WebSocketResponse:
        """Handle the complete WebSocket connection lifecycle."""
        try:
            async with asyncio.timeout(HELLO_TIMEOUT):
                _ = await self._wsock.prepare(self._request)
        except TimeoutError:
            self._logger.warning("Timed out preparing WebSocket for %s", self._request.remote)
            raise
        self._logger.info("Connection established")
        self._writer_task = self._relay.loop.create_task(self._writer())
        try:
            await self._run_message_loop()
        finally:
            await self._cleanup()
        return self._wsock

    async def _run_message_loop(self) -> None:
        receive_task: asyncio.Task[WSMessage] | None = None
        try:
            while not self._wsock.closed:
                receive_task = self._relay.loop.create_task(self._wsock.receive())
                assert self._writer_task is not None  # for type checking
                done, pending = await asyncio.wait(
                    [receive_task, self._writer_task],
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if self._writer_task in done:
                    self._logger.debug("Writer task ended, closing connection")
                    if receive_task in pending:
                        _ = receive_task.cancel()
                    break

                try:
                    msg = await receive_task
                except (ConnectionError, asyncio.CancelledError, TimeoutError) as e:
                    self._logger.error("Error receiving message: %s", e)
                    break

                if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break

                if msg.type == WSMsgType.TEXT:
                    try:
                        self._handle_message(PeerMessage.from_json(cast("str", msg.data)))
                    except Exception:
                        self._logger.exception("Failed to parse peer message")
                    if self._refused:
                        break
                elif msg.type == WSMsgType.BINARY:
                    self._handle_frame(cast("bytes", msg.data))
            self._logger.debug("Peer socket closed")
        except asyncio.CancelledError:
            self._logger.debug("Connection closed by peer")
        except Exception:
            self._logger.exception("Unexpected error in peer connection")
        finally:
            if receive_task and not receive_task.done():
                _ = receive_task.cancel()

    def _handle_message(self, message: PeerMessage) -> None:
        match message:
            case PeerHelloMessage(payload=peer_info):
                if self._peer_info is not None:
                    self._logger.warning("Ignoring repeated peer/hello")
                    return
                if peer_info.version != PROTOCOL_VERSION:
                    self._logger.warning(
                        "Peer speaks protocol version %d, expected %d",
                        peer_info.version,
                        PROTOCOL_VERSION,
                    )
                if self._relay.peer_id_taken(peer_info.peer_id):
                    # Senders of command frames are told apart by peer id
                    self._logger.warning(
                        "Refusing peer %s, the id is already in use", peer_info.peer_id
                    )
                    self._refused = True
                    return
                self._peer_info = peer_info
                self._logger = logger.getChild(peer_info.peer_id)
                self._logger.info("Peer %s (%s) said hello", peer_info.peer_id, peer_info.name)
                self._relay._on_peer_add(self)  # noqa: SLF001
                self.send_message(
                    RelayHelloMessage(
                        payload=RelayHelloPayload(
                            peer_id=self._relay.peer_id,
                            name=self._relay.name,
                            version=PROTOCOL_VERSION,
                        )
                    )
                )
            case _:
                self._logger.debug("Unhandled peer message type: %s", type(message).__name__)

    def _handle_frame(self, data: bytes) -> None:
        if self._peer_info is None:
            self._logger.warning("Dropping command frame received before peer/hello")
            return
        try:
            self._relay._deliver(data, self._peer_info.peer_id)  # noqa: SLF001
        except Exception:
            # NOTE: a failing frame must not take the connection down
            self._logger.exception("Error handling command frame")

    async def _writer(self) -> None:
        """Write outgoing messages from the queue."""
        try:
            while not self._wsock.closed:
                item = await self._to_write.get()
                try:
                    if isinstance(item, bytes):
                        await self._wsock.send_bytes(item)
                    else:
                        await self._wsock.send_str(item.to_json())
                except ConnectionError:
                    self._logger.warning("Connection error sending data, ending writer task")
                    break
            self._logger.debug("WebSocket connection was closed, ending writer task")
        except Exception:
            self._logger.exception("Error in writer task for peer")

    async def _cleanup(self) -> None:
        if self._writer_task and not self._writer_task.done():
            _ = self._writer_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._writer_task
        try:
            if self._refused:
                _ = await self._wsock.close(
                    code=WSCloseCode.POLICY_VIOLATION, message=b"peer id already in use"
                )
            elif not self._wsock.closed:
                _ = await self._wsock.close()
        except Exception:
            self._logger.exception("Failed to close websocket")
        self._relay._on_peer_remove(self)  # noqa: SLF001
        self._logger.info("Peer disconnected")

    async def close(self) -> None:
        """Close the connection to this peer."""
        if not self._wsock.closed:
            _ = await self._wsock.close()


class RelayServer(Transport):
    """
    The authoritative peer, relaying command frames to every connected peer.

    Frames broadcast by the relay are also delivered to the relay itself, on
    the next iteration of the event loop so that delivery order is kept.
    """

    loop: asyncio.AbstractEventLoop
    _connections: set[_PeerConnection]
    _runner: web.AppRunner | None

    def __init__(
        self, loop: asyncio.AbstractEventLoop, peer_id: str, name: str | None = None
    ) -> None:
        """Initialize a relay for the local peer ``peer_id``."""
        self.loop = loop
        self._peer_id = peer_id
        self._name = name or peer_id
        self._connections = set()
        self._runner = None
        logger.debug("RelayServer initialized: id=%s, name=%s", peer_id, self._name)

    @property
    def peer_id(self) -> str:
        """Identifier of the local, authoritative peer."""
        return self._peer_id

    @property
    def name(self) -> str:
        """Friendly name of the relay."""
        return self._name

    @property
    def is_authoritative(self) -> bool:
        """Always True, the relay is the authoritative peer."""
        return True

    @property
    def peer_ids(self) -> list[str]:
        """Identifiers of the peers that completed the handshake."""
        return sorted(conn.peer_id for conn in self._connections if conn.ready)

    def peer_id_taken(self, peer_id: str) -> bool:
        """Return True if ``peer_id`` is the relay's own id or a connected peer's."""
        return peer_id == self._peer_id or any(
            conn.peer_id == peer_id for conn in self._connections
        )

    async def on_peer_connect(self, request: web.Request) -> web.WebSocketResponse:
        """Handle an incoming WebSocket connection from a peer."""
        logger.debug("Incoming peer connection from %s", request.remote)
        return await _PeerConnection(self, request).handle()

    def create_app(self, path: str = DEFAULT_RELAY_PATH) -> web.Application:
        """Create an aiohttp application serving the relay at ``path``."""
        app = web.Application()
        app.router.add_get(path, self.on_peer_connect)
        return app

    async def start(self, host: str, port: int, path: str = DEFAULT_RELAY_PATH) -> None:
        """Listen for peers on ``host:port``."""
        self._runner = web.AppRunner(self.create_app(path))
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info("Relay listening on ws://%s:%d%s", host, port, path)

    async def stop(self) -> None:
        """Disconnect every peer and stop listening."""
        for connection in list(self._connections):
            await connection.close()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    def broadcast(self, data: bytes) -> None:
        """Send ``data`` to every connected peer and to the relay itself."""
        for connection in list(self._connections):
            if connection.ready:
                connection.send_message(data)
        _ = self.loop.call_soon(self._deliver, data, self._peer_id)

    def send_to_authority(self, data: bytes) -> None:
        """Deliver ``data`` locally, the relay is the authority."""
        _ = self.loop.call_soon(self._deliver, data, self._peer_id)

    def _on_peer_add(self, connection: _PeerConnection) -> None:
        logger.debug("Adding peer %s to relay", connection.peer_id)
        self._connections.add(connection)

    def _on_peer_remove(self, connection: _PeerConnection) -> None:
        if connection in self._connections:
            logger.debug("Removing peer %s from relay", connection.peer_id)
            self._connections.remove(connection)


class PeerClient(Transport):
    """A non authoritative peer connected to a RelayServer."""

    def __init__(
        self,
        peer_id: str,
        name: str | None = None,
        *,
        session: ClientSession | None = None,
    ) -> None:
        """Create a new peer client."""
        self._peer_id = peer_id
        self._name = name or peer_id
        self._session = session
        self._owns_session = session is None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ws: ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._to_write: asyncio.Queue[PeerMessage | bytes] = asyncio.Queue(
            maxsize=MAX_PENDING_MSG
        )
        self._relay_hello_event: asyncio.Event | None = None
        self._relay_info: RelayHelloPayload | None = None
        self._connected = False

    @property
    def peer_id(self) -> str:
        """Identifier of the local peer."""
        return self._peer_id

    @property
    def is_authoritative(self) -> bool:
        """Always False, the relay is the authoritative peer."""
        return False

    @property
    def relay_info(self) -> RelayHelloPayload | None:
        """Return information about the connected relay, if available."""
        return self._relay_info

    @property
    def connected(self) -> bool:
        """Return True if the client currently has an active connection."""
        return self._connected and self._ws is not None and not self._ws.closed

    async def connect(self, url: str) -> None:
        """Connect to the relay at ``url`` and complete the handshake."""
        if self.connected:
            logger.debug("Already connected")
            return

        self._loop = asyncio.get_running_loop()
        if self._session is None:
            self._session = ClientSession()
        self._relay_hello_event = asyncio.Event()

        logger.info("Connecting to relay at %s", url)
        self._ws = await self._session.ws_connect(url, heartbeat=30)
        self._connected = True
        self._reader_task = self._loop.create_task(self._reader_loop())
        self._writer_task = self._loop.create_task(self._writer())
        self._send(
            PeerHelloMessage(
                payload=PeerHelloPayload(
                    peer_id=self._peer_id, name=self._name, version=PROTOCOL_VERSION
                )
            )
        )

        try:
            await asyncio.wait_for(self._relay_hello_event.wait(), timeout=HELLO_TIMEOUT)
        except TimeoutError as err:
            await self.disconnect()
            raise TimeoutError("Timed out waiting for relay/hello response") from err
        if self._relay_info is None:
            await self.disconnect()
            raise ConnectionError(f"Relay closed the connection during the handshake ({url})")
        logger.info("Handshake with relay complete")

    async def disconnect(self) -> None:
        """Disconnect from the relay and release resources."""
        self._connected = False
        current_task = asyncio.current_task(loop=self._loop) if self._loop else None

        for task in (self._writer_task, self._reader_task):
            if task is not None and task is not current_task:
                _ = task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._writer_task = None
        self._reader_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._relay_info = None

    def broadcast(self, data: bytes) -> None:
        """Not available, only the relay broadcasts."""
        raise RuntimeError("Only the authoritative peer can broadcast")

    def send_to_authority(self, data: bytes) -> None:
        """Send a command frame to the relay."""
        if not self.connected:
            raise RuntimeError("Peer is not connected")
        self._send(data)

    def _send(self, item: PeerMessage | bytes) -> None:
        self._to_write.put_nowait(item)

    async def _writer(self) -> None:
        assert self._ws is not None
        try:
            while not self._ws.closed:
                item = await self._to_write.get()
                if isinstance(item, bytes):
                    await self._ws.send_bytes(item)
                else:
                    await self._ws.send_str(item.to_json())
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            pass
        except ConnectionError:
            logger.warning("Connection error sending data, ending writer task")
        except Exception:
            logger.exception("Error in writer task")

    async def _reader_loop(self) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                self._handle_ws_message(msg)
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            pass
        except Exception:
            logger.exception("Error reading from relay")
        finally:
            if self._relay_hello_event is not None:
                # Wakes up a connect() still waiting for relay/hello
                self._relay_hello_event.set()
            if self._connected:
                await self.disconnect()

    def _handle_ws_message(self, msg: WSMessage) -> None:
        if msg.type is WSMsgType.TEXT:
            self._handle_json_message(msg.data)
        elif msg.type is WSMsgType.BINARY:
            try:
                self._deliver(msg.data, self._relay_info.peer_id if self._relay_info else "")
            except Exception:
                logger.exception("Error handling command frame")
        elif msg.type is WSMsgType.ERROR:
            logger.error("WebSocket error: %s", self._ws.exception() if self._ws else "unknown")

    def _handle_json_message(self, data: str) -> None:
        try:
            message = RelayMessage.from_json(data)
        except Exception:
            logger.exception("Failed to parse relay message: %s", data)
            return

        match message:
            case RelayHelloMessage(payload=payload):
                self._relay_info = payload
                if self._relay_hello_event:
                    self._relay_hello_event.set()
                logger.info("Connected to relay '%s' (%s)", payload.name, payload.peer_id)
            case _:
                logger.debug("Unhandled relay message type: %s", type(message).__name__)

    async def __aenter__(self) -> Self:
        """Enter the async context manager returning this instance."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Disconnect when leaving the async context manager."""
        await self.disconnect()
