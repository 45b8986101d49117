"""Command-line interface for running an aionetaudio peer."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import uuid
from collections.abc import Sequence

import aioconsole
from aiohttp import ClientError

from aionetaudio.context import (
    ContextEvent,
    NetworkAudioContext,
    SourceAddedEvent,
    SourceRemovedEvent,
)
from aionetaudio.discovery import RelayAdvertiser, RelayDiscovery
from aionetaudio.dispatcher import CommandDispatcher
from aionetaudio.errors import NetworkAudioError
from aionetaudio.models.config import LinkConfig, RelayConfig, SessionConfig
from aionetaudio.session import build_dispatcher
from aionetaudio.transport import PeerClient, RelayServer

logger = logging.getLogger(__name__)


def parse_link(value: str) -> LinkConfig:
    """Parse ``FROM:TO[:DAMPING[:bi]]`` into a LinkConfig."""
    parts = value.split(":")
    if not 2 <= len(parts) <= 4:
        raise argparse.ArgumentTypeError(f"Invalid link {value!r}, use FROM:TO[:DAMPING[:bi]]")
    try:
        link = LinkConfig(
            from_source=int(parts[0]),
            to_source=int(parts[1]),
            damping=float(parts[2]) if len(parts) > 2 else 1.0,
        )
    except ValueError as err:
        raise argparse.ArgumentTypeError(f"Invalid link {value!r}: {err}") from err
    if len(parts) == 4:
        if parts[3] != "bi":
            raise argparse.ArgumentTypeError(f"Invalid link flag {parts[3]!r}, expected 'bi'")
        link.bidirectional = True
    return link


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Run a networked audio source peer")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="JSON session configuration file")
    common.add_argument("--clips-dir", default=None, help="Directory containing the clips")
    common.add_argument(
        "--clip", action="append", default=[], dest="clips", help="Register a clip name"
    )
    common.add_argument(
        "--source", action="append", type=int, default=[], dest="sources", help="Source id"
    )
    common.add_argument(
        "--link",
        action="append",
        type=parse_link,
        default=[],
        dest="links",
        help="Link sources as FROM:TO[:DAMPING[:bi]]",
    )
    common.add_argument("--id", default=None, help="Unique identifier for this peer")
    common.add_argument("--name", default=None, help="Friendly name for this peer")
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )

    subparsers = parser.add_subparsers(dest="mode", required=True)
    serve = subparsers.add_parser(
        "serve", parents=[common], help="Run the authoritative relay and a local peer"
    )
    serve.add_argument("--host", default=None, help="Address to listen on")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on")
    serve.add_argument(
        "--no-advertise", action="store_true", help="Do not announce the relay via mDNS"
    )
    join = subparsers.add_parser("join", parents=[common], help="Connect to a relay")
    join.add_argument(
        "--url",
        default=None,
        help="WebSocket URL of the relay. If omitted, discover via mDNS.",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> SessionConfig:
    """Merge the configuration file with command line overrides."""
    config = SessionConfig.load(args.config) if args.config else SessionConfig()
    if args.clips_dir is not None:
        config.clips_dir = args.clips_dir
    config.clips.extend(args.clips)
    config.sources.extend(s for s in args.sources if s not in config.sources)
    config.links.extend(args.links)
    if getattr(args, "host", None) is not None or getattr(args, "port", None) is not None:
        config.relay = RelayConfig(
            host=args.host or config.relay.host,
            port=args.port or config.relay.port,
            path=config.relay.path,
        )
    return config


class Console:
    """Turns keyboard input into source calls."""

    def __init__(self, dispatcher: CommandDispatcher) -> None:
        """Initialize the console for ``dispatcher``'s sources."""
        self._dispatcher = dispatcher

    @property
    def _context(self) -> NetworkAudioContext:
        return self._dispatcher.context

    def _clip(self, name: str) -> object:
        return self._context.clips.resolve_name(name)

    def handle_line(self, line: str) -> bool:
        """Execute one command line. Return False when the user wants to quit."""
        parts = line.strip().split()
        if not parts:
            return True
        keyword, args = parts[0].lower(), parts[1:]
        if keyword in {"quit", "exit", "q"}:
            return False
        try:
            self._execute(keyword, args)
        except (ValueError, IndexError):
            _print_event(f"Invalid arguments for {keyword}")
        except NetworkAudioError as err:
            _print_event(str(err))
        return True

    def _execute(self, keyword: str, args: list[str]) -> None:  # noqa: PLR0912
        if keyword == "status":
            self._print_status()
            return
        source = self._context.sources.get(int(args[0]))
        rest = args[1:]
        if keyword == "link":
            source.add_linked_source(
                self._context.sources.get(int(rest[0])),
                float(rest[1]),
                bidirectional="bi" in rest[2:],
            )
        elif keyword in {"play", "p"}:
            source.play(int(rest[0]) if rest else 0)
        elif keyword in {"stop", "s"}:
            source.stop()
        elif keyword == "pause":
            source.pause()
        elif keyword == "unpause":
            source.unpause()
        elif keyword in {"vol", "volume"}:
            source.volume = float(rest[0])
        elif keyword == "pitch":
            source.pitch = float(rest[0])
        elif keyword == "clip":
            source.clip = self._clip(rest[0])
        elif keyword == "loop":
            source.loop = rest[0].lower() in {"on", "true", "1"}
        elif keyword == "oneshot":
            source.play_one_shot(self._clip(rest[0]), float(rest[1]) if len(rest) > 1 else 1.0)
        elif keyword == "fadeout":
            source.fade_out(float(rest[0]))
        elif keyword == "fadein":
            source.fade_in(float(rest[0]), float(rest[1]))
        elif keyword == "random":
            source.loop_random_clips(
                float(rest[0]), float(rest[1]), *(self._clip(name) for name in rest[2:])
            )
        elif keyword == "unrandom":
            source.stop_loop_random_clips()
        else:
            _print_event("Unknown command")

    def _print_status(self) -> None:
        for source in self._context.sources:
            _print_event(
                f"Source {source.source_id}: playing={source.is_playing} "
                f"volume={source.volume:.3f} nominal={source.nominal_volume:.3f} "
                f"pitch={source.pitch:.2f} loop={source.loop} clip={source.clip}"
            )


def _on_context_event(event: ContextEvent) -> None:
    match event:
        case SourceAddedEvent(source_id=source_id):
            _print_event(f"Source {source_id} online")
        case SourceRemovedEvent(source_id=source_id):
            _print_event(f"Source {source_id} removed")


async def _keyboard_loop(console: Console) -> None:
    try:
        while True:
            try:
                line = await aioconsole.ainput()
            except EOFError:
                break
            if not console.handle_line(line):
                break
    except asyncio.CancelledError:
        logger.debug("Keyboard loop cancelled, exiting gracefully")
        raise


async def _run_console(dispatcher: CommandDispatcher, config: SessionConfig) -> None:
    dispatcher.context.add_event_listener(_on_context_event)
    dispatcher.context.scheduler.start(config.tick_interval)
    _print_instructions()
    keyboard_task = asyncio.create_task(_keyboard_loop(Console(dispatcher)))

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, keyboard_task.cancel)
    try:
        await keyboard_task
    except asyncio.CancelledError:  # pragma: no cover - cancellation path
        logger.debug("Console cancelled")
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        await dispatcher.context.scheduler.stop()
        dispatcher.close()


async def _serve(args: argparse.Namespace, config: SessionConfig) -> int:
    peer_id = args.id or f"relay-{uuid.uuid4().hex[:8]}"
    relay = RelayServer(asyncio.get_running_loop(), peer_id, args.name)
    dispatcher = build_dispatcher(config, relay)
    await relay.start(config.relay.host, config.relay.port, config.relay.path)
    advertiser = None
    if not args.no_advertise:
        advertiser = RelayAdvertiser(relay.name, config.relay.port, config.relay.path)
        await advertiser.start()
    try:
        await _run_console(dispatcher, config)
    finally:
        if advertiser is not None:
            await advertiser.stop()
        await relay.stop()
    return 0


async def _join(args: argparse.Namespace, config: SessionConfig) -> int:
    peer_id = args.id or f"peer-{uuid.uuid4().hex[:8]}"
    url = args.url
    if url is None:
        discovery = RelayDiscovery()
        await discovery.start()
        try:
            logger.info("Waiting for mDNS discovery of a relay...")
            _print_event("Searching for relay...")
            url = await discovery.wait_for_first_relay()
            _print_event(f"Found relay at {url}")
        finally:
            await discovery.stop()

    client = PeerClient(peer_id, args.name)
    try:
        await client.connect(url)
    except (TimeoutError, OSError, ClientError) as err:
        logger.error("Could not connect to %s: %s", url, err)
        await client.disconnect()
        return 1
    async with client:
        dispatcher = build_dispatcher(config, client)
        await _run_console(dispatcher, config)
    return 0


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point executing the asynchronous CLI workflow."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))
    try:
        config = load_config(args)
    except (OSError, ValueError) as err:
        logger.error("Invalid configuration: %s", err)
        return 1
    if args.mode == "serve":
        return await _serve(args, config)
    return await _join(args, config)


def _print_event(message: str) -> None:
    print(message, flush=True)  # noqa: T201


def _print_instructions() -> None:
    print(  # noqa: T201
        (
            "Commands: play <id> [delay], stop <id>, pause <id>, unpause <id>, vol <id> <v>, "
            "pitch <id> <p>, clip <id> <name>, loop <id> on|off, oneshot <id> <clip> [scale], "
            "fadeout <id> <s>, fadein <id> <v> <s>, random <id> <min> <max> <clips...>, "
            "unrandom <id>, link <from> <to> <damping> [bi], status, quit(q)"
        ),
        flush=True,
    )


def main() -> int:
    """Run the CLI."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
