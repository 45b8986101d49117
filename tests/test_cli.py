"""Tests for CLI argument handling and the console commands."""

import argparse

import pytest

from aionetaudio.cli import Console, load_config, parse_args, parse_link
from aionetaudio.models.config import LinkConfig


class TestArguments:
    """Tests for argument parsing."""

    def test_parse_link(self):
        """Links are given as FROM:TO[:DAMPING[:bi]]."""
        assert parse_link("1:2") == LinkConfig(1, 2)
        assert parse_link("1:2:0.25") == LinkConfig(1, 2, 0.25)
        assert parse_link("1:2:0.25:bi") == LinkConfig(1, 2, 0.25, True)

    @pytest.mark.parametrize("value", ["1", "a:2", "1:2:x", "1:2:0.5:both", "1:2:3:4:5"])
    def test_parse_invalid_link(self, value):
        """Malformed links are argument errors."""
        with pytest.raises(argparse.ArgumentTypeError):
            parse_link(value)

    def test_serve_arguments(self):
        """serve accepts repeated sources and links plus listen options."""
        args = parse_args(
            ["serve", "--source", "1", "--source", "2", "--link", "1:2:0.5", "--port", "9000"]
        )

        assert args.mode == "serve"
        assert args.sources == [1, 2]
        assert args.links == [LinkConfig(1, 2, 0.5)]
        assert args.port == 9000

    def test_load_config_merges_overrides(self, tmp_path):
        """Command line values extend the configuration file."""
        path = tmp_path / "session.json"
        path.write_text('{"clips": ["slam"], "sources": [1]}')
        args = parse_args(
            ["serve", "--config", str(path), "--clip", "creak", "--source", "1", "--source", "2"]
            + ["--port", "9100"]
        )

        config = load_config(args)

        assert config.clips == ["slam", "creak"]
        assert config.sources == [1, 2]
        assert config.relay.port == 9100

    def test_join_without_config(self):
        """join works without a configuration file."""
        config = load_config(parse_args(["join", "--url", "ws://relay:8937/netaudio"]))

        assert config.sources == []


class TestConsole:
    """Tests for keyboard commands."""

    @pytest.fixture
    def console(self, authority):
        return Console(authority.dispatcher)

    def test_volume(self, hub, authority, console):
        """vol sends a volume change."""
        assert console.handle_line("vol 1 0.5")
        hub.flush()

        assert authority.source(1).volume == 0.5

    def test_clip_and_play(self, hub, authority, console):
        """Clips are chosen by name."""
        console.handle_line("clip 2 slam")
        console.handle_line("play 2")
        hub.flush()

        assert authority.source(2).clip == "slam"
        assert authority.source(2).is_playing

    def test_link(self, hub, authority, peer, console):
        """link adds the link on every peer."""
        console.handle_line("link 1 2 0.5 bi")
        hub.flush()

        for side in (authority, peer):
            assert side.context.links.damping(1, 2) == 0.5
            assert side.context.links.damping(2, 1) == 0.5

    def test_self_link(self, hub, console, capsys):
        """Linking a source to itself is reported and nothing is sent."""
        console.handle_line("link 1 1 0.5")

        assert "cannot be linked to itself" in capsys.readouterr().out
        assert hub.pending == 0

    def test_invalid_arguments(self, hub, console, capsys):
        """Bad arguments are reported and nothing is sent."""
        assert console.handle_line("vol 1 loud")
        assert console.handle_line("vol")
        assert console.handle_line("oneshot 1 missing")
        assert console.handle_line("stop 42")

        output = capsys.readouterr().out
        assert "Invalid arguments for vol" in output
        assert "not registered" in output
        assert hub.pending == 0

    def test_status(self, console, capsys):
        """status prints every source."""
        console.handle_line("status")

        output = capsys.readouterr().out
        assert "Source 1:" in output
        assert "Source 2:" in output

    def test_quit(self, console):
        """quit ends the console."""
        assert console.handle_line("") is True
        assert console.handle_line("quit") is False
