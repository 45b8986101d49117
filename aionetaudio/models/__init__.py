"""Models for the aionetaudio replication protocol."""

from __future__ import annotations

__all__ = [
    "COMMAND_HEADER_FORMAT",
    "COMMAND_HEADER_SIZE",
    "COMMAND_TYPES",
    "Command",
    "CommandHeader",
    "CommandKind",
    "FadeKind",
    "commands",
    "config",
    "decode_command",
    "encode_command",
    "messages",
    "types",
    "unpack_command_header",
]

from . import commands, config, messages, types
from .commands import (
    COMMAND_HEADER_FORMAT,
    COMMAND_HEADER_SIZE,
    COMMAND_TYPES,
    Command,
    CommandHeader,
    decode_command,
    encode_command,
    unpack_command_header,
)
from .types import CommandKind, FadeKind
