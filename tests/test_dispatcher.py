"""
Tests for command relaying and application between peers.

Peers talk through a LocalHub, which only delivers on ``flush``. That makes
the moment a command takes effect explicit in every test.
"""

import logging

import pytest

from aionetaudio.clips import clip_id_for
from aionetaudio.context import LinkAddedEvent
from aionetaudio.errors import DuplicateSource, InvalidLink
from aionetaudio.models import encode_command
from aionetaudio.models.commands import AddLink, Play, PlayOneShot, SetVolume
from aionetaudio.models.types import FadeKind


class TestReplication:
    """Commands take effect on every peer exactly once."""

    def test_peer_command_reaches_everyone_once(self, hub, authority, peer):
        """A one shot issued on a peer plays once on both peers."""
        peer.source(1).play_one_shot("slam")

        assert peer.device(1).calls == []
        assert authority.device(1).calls == []

        hub.flush()

        assert peer.device(1).calls_named("play_one_shot") == [("slam", 1.0)]
        assert authority.device(1).calls_named("play_one_shot") == [("slam", 1.0)]
        assert authority.dispatcher.relayed_count == 1

    def test_authority_command_reaches_everyone_once(self, hub, authority, peer):
        """A one shot issued on the authority plays once on both peers."""
        authority.source(2).play_one_shot("creak", 0.5)

        delivered = hub.flush()

        assert delivered == 2
        assert peer.device(2).calls_named("play_one_shot") == [("creak", 0.5)]
        assert authority.device(2).calls_named("play_one_shot") == [("creak", 0.5)]
        assert authority.dispatcher.relayed_count == 0

    def test_both_sides_issue(self, hub, authority, peer):
        """Commands issued on both sides each play once everywhere."""
        peer.source(1).play_one_shot("slam")
        authority.source(2).play_one_shot("creak")

        hub.flush()

        for side in (authority, peer):
            assert side.device(1).calls_named("play_one_shot") == [("slam", 1.0)]
            assert side.device(2).calls_named("play_one_shot") == [("creak", 1.0)]
            assert side.dispatcher.applied_count == 2

    def test_issuer_sees_change_only_after_relay(self, hub, authority, peer):
        """Getters keep the old value until the command came back."""
        peer.source(1).volume = 0.5

        assert peer.source(1).volume == 1.0
        hub.flush()
        assert peer.source(1).volume == 0.5
        assert authority.source(1).volume == 0.5

    def test_order_is_kept(self, hub, authority, peer):
        """Commands apply in the order the authority relayed them."""
        peer.source(1).volume = 0.25
        peer.source(1).volume = 0.75

        hub.flush()

        assert authority.source(1).volume == 0.75
        assert peer.source(1).volume == 0.75

    def test_properties(self, hub, authority, peer):
        """Every property setter is replicated."""
        source = peer.source(1)
        source.clip = "whoosh"
        source.doppler_level = 0.5
        source.ignore_listener_pause = True
        source.ignore_listener_volume = True
        source.loop = True
        source.pitch = 1.5
        source.time = 2.5
        source.time_samples = 1000

        hub.flush()

        for side in (authority, peer):
            replica = side.source(1)
            assert replica.clip == "whoosh"
            assert replica.doppler_level == 0.5
            assert replica.ignore_listener_pause is True
            assert replica.ignore_listener_volume is True
            assert replica.loop is True
            assert replica.pitch == 1.5
            assert replica.time == 2.5
            assert replica.time_samples == 1000

    def test_playback_controls(self, hub, authority, peer):
        """Play, pause, unpause and stop are replicated."""
        source = peer.source(1)
        source.clip = "slam"
        source.play()
        hub.flush()
        assert authority.source(1).is_playing

        source.pause()
        hub.flush()
        assert not authority.source(1).is_playing
        assert authority.device(1).playing

        source.unpause()
        hub.flush()
        assert authority.source(1).is_playing

        source.stop()
        hub.flush()
        assert not authority.source(1).is_playing
        assert not peer.source(1).is_playing

    def test_delayed_and_scheduled_play(self, hub, authority, peer):
        """Timed play variants reach the device unchanged."""
        source = peer.source(1)
        source.play(44100)
        source.play_delayed(0.5)
        source.play_scheduled(10.25)

        hub.flush()

        device = authority.device(1)
        assert device.calls_named("play") == [(None, 44100)]
        assert device.calls_named("play_delayed") == [(0.5,)]
        assert device.calls_named("play_scheduled") == [(10.25,)]

    def test_play_and_loop(self, hub, authority, peer):
        """play_and_loop sets clip, loop and volume before playing."""
        peer.source(2).play_and_loop("whoosh", 0.5)

        hub.flush()

        for side in (authority, peer):
            replica = side.source(2)
            assert replica.clip == "whoosh"
            assert replica.loop is True
            assert replica.volume == 0.5
            assert replica.is_playing

    def test_third_peer(self, hub, authority, peer, make_peer):
        """Every connected peer receives relayed commands."""
        third = make_peer("third")

        peer.source(1).volume = 0.5
        hub.flush()

        assert third.source(1).volume == 0.5


class TestLinkedSources:
    """Commands fan out to linked sources with damping."""

    @pytest.fixture(autouse=True)
    def link(self, hub, authority, peer):
        authority.source(1).add_linked_source(authority.source(2), 0.3, bidirectional=True)
        hub.flush()

    def test_play_damps_linked_volume(self, hub, authority, peer):
        """Playing on a source plays linked sources at nominal volume times damping."""
        peer.source(1).clip = "slam"
        peer.source(1).volume = 0.9
        peer.source(1).play()

        hub.flush()

        for side in (authority, peer):
            assert side.source(1).volume == pytest.approx(0.9)
            assert side.source(1).nominal_volume == pytest.approx(0.9)
            assert side.source(2).volume == pytest.approx(0.27)
            assert side.source(2).nominal_volume == 1.0
            assert side.device(2).calls_named("play") == [("slam", 0)]
            assert side.source(2).is_playing

    def test_linked_one_shot(self, hub, authority, peer):
        """One shots propagate in both directions of a bidirectional link."""
        peer.source(2).play_one_shot("creak", 0.5)

        hub.flush()

        for side in (authority, peer):
            assert side.device(2).calls_named("play_one_shot") == [("creak", 0.5)]
            ((clip, scale),) = side.device(1).calls_named("play_one_shot")
            assert clip == "creak"
            assert scale == pytest.approx(0.15)

    def test_directed_link(self, hub, authority, peer, make_peer):
        """A one way link does not propagate backwards."""
        third = make_peer("third", sources=(1, 2))
        third.context.add_link(1, 2, 0.5)

        authority.source(2).play_one_shot("slam")
        hub.flush()
        assert third.device(1).calls_named("play_one_shot") == []

        authority.source(1).play_one_shot("slam")
        hub.flush()
        assert third.device(2).calls_named("play_one_shot") == [
            ("slam", 1.0),
            ("slam", 0.5),
        ]

    def test_fade_out_fans_out(self, hub, authority, peer):
        """Linked sources fade from the origin's nominal volume times damping."""
        peer.source(1).volume = 0.8
        hub.flush()
        peer.source(1).fade_out(2.0)
        hub.flush()

        for side in (authority, peer):
            scheduler = side.context.scheduler
            assert scheduler.fade_for(1).kind is FadeKind.FADING_OUT
            assert side.source(1).volume == pytest.approx(0.8)
            assert side.source(2).volume == pytest.approx(0.24)
            scheduler.tick(2.0)
            assert side.device(1).calls_named("stop") == [()]
            assert side.device(2).calls_named("stop") == [()]
            assert side.source(1).volume == pytest.approx(0.8)

    def test_fade_in_fans_out(self, hub, authority, peer):
        """Linked sources fade towards the damped target."""
        peer.source(1).fade_in(0.5, 1.0)
        hub.flush()

        for side in (authority, peer):
            side.context.scheduler.tick(1.0)
            assert side.source(1).volume == pytest.approx(0.5)
            assert side.source(2).volume == pytest.approx(0.15)

    def test_removed_source_is_skipped(self, hub, authority, peer):
        """Removing a source drops its links; commands still apply to the rest."""
        authority.context.remove_source(2)

        peer.source(1).play_one_shot("slam")
        hub.flush()

        assert authority.context.links.damping(1, 2) is None
        assert authority.device(1).calls_named("play_one_shot") == [("slam", 1.0)]
        assert authority.device(2).calls == []
        assert len(peer.device(2).calls_named("play_one_shot")) == 1


class TestLinkReplication:
    """Links added through a source reach every peer."""

    def test_link_from_authority_applies_everywhere(self, hub, authority, make_peer):
        """A link and a one shot sent together play damped on every peer."""
        second = make_peer("second")
        authority.source(1).add_linked_source(authority.source(2), 0.3)
        authority.source(1).play_one_shot("slam")

        hub.flush()

        for side in (authority, second):
            assert side.context.links.damping(1, 2) == pytest.approx(0.3)
            ((clip, scale),) = side.device(2).calls_named("play_one_shot")
            assert clip == "slam"
            assert scale == pytest.approx(0.3)

    def test_link_from_peer_goes_through_relay(self, hub, authority, peer):
        """A peer's link is applied only once the authority relayed it."""
        peer.source(2).add_linked_source(peer.source(1), 0.5, bidirectional=True)

        assert peer.context.links.damping(2, 1) is None
        hub.flush()

        assert authority.dispatcher.relayed_count == 1
        for side in (authority, peer):
            assert side.context.links.damping(2, 1) == 0.5
            assert side.context.links.damping(1, 2) == 0.5

    def test_link_events_on_every_peer(self, hub, authority, peer):
        """Every peer's context reports the replicated link."""
        events = []
        peer.context.add_event_listener(events.append)

        authority.source(1).add_linked_source(authority.source(2), 0.25)
        hub.flush()

        assert events == [LinkAddedEvent(1, 2, 0.25)]

    def test_self_link_is_not_sent(self, hub, authority):
        """Linking a source to itself fails before anything is sent."""
        with pytest.raises(InvalidLink):
            authority.source(1).add_linked_source(authority.source(1), 0.5)

        assert hub.pending == 0

    def test_link_to_unknown_source_is_dropped(self, hub, authority, peer):
        """A link naming a source a peer does not have is dropped there."""
        authority.dispatcher.send(AddLink(1, 99, 0.5))

        hub.flush()

        assert authority.dispatcher.dropped_count == 1
        assert peer.dispatcher.dropped_count == 1
        assert peer.context.links.fan_out(1) == [(1, 1.0)]


class TestDroppedCommands:
    """Commands that cannot be applied are dropped without side effects."""

    def test_malformed_frame_is_not_relayed(self, hub, authority, peer):
        """The authority drops malformed frames instead of relaying them."""
        peer.dispatcher.transport.send_to_authority(b"\x01\x00")
        peer.dispatcher.transport.send_to_authority(
            encode_command(SetVolume(1, 0.5)) + b"\x00"
        )

        hub.flush()

        assert authority.dispatcher.dropped_count == 2
        assert authority.dispatcher.relayed_count == 0
        assert peer.dispatcher.dropped_count == 0

        peer.source(1).volume = 0.5
        hub.flush()
        assert authority.source(1).volume == 0.5

    def test_unknown_source(self, hub, authority, peer, caplog):
        """Commands for unknown sources are dropped with a warning."""
        with caplog.at_level(logging.WARNING, logger="aionetaudio"):
            peer.dispatcher.send(Play(99))
            hub.flush()

        assert authority.dispatcher.relayed_count == 1
        assert authority.dispatcher.dropped_count == 1
        assert peer.dispatcher.dropped_count == 1
        assert "Source 99 is not registered" in caplog.text

    def test_unknown_clip_id(self, hub, authority, peer):
        """One shots with unknown clip ids are dropped."""
        authority.dispatcher.send(PlayOneShot(1, clip_id_for("missing")))

        hub.flush()

        assert authority.device(1).calls == []
        assert peer.device(1).calls == []
        assert peer.dispatcher.dropped_count == 1

    def test_peer_missing_a_clip(self, hub, authority, make_peer):
        """A peer without the clip drops the command, the others play it."""
        partial = make_peer("partial", clips=("slam",))

        authority.source(1).play_one_shot("creak")
        hub.flush()

        assert authority.device(1).calls_named("play_one_shot") == [("creak", 1.0)]
        assert partial.device(1).calls == []
        assert partial.dispatcher.dropped_count == 1

    def test_unregistered_clip_is_not_sent(self, hub, authority, peer, caplog):
        """Unregistered clip handles are logged and nothing is sent."""
        with caplog.at_level(logging.WARNING, logger="aionetaudio"):
            peer.source(1).play_one_shot("missing")
            peer.source(1).clip = "missing"
            peer.source(1).play_and_loop("missing", 1.0)

        assert hub.pending == 0
        assert "not registered" in caplog.text

    def test_volume_is_a_float(self, hub, authority, peer):
        """Fractional volumes survive the wire."""
        peer.source(1).volume = 0.25

        hub.flush()

        assert authority.source(1).volume == 0.25
        assert peer.source(1).nominal_volume == 0.25


class TestDispatcher:
    """Tests for dispatcher life cycle."""

    def test_duplicate_source(self, authority):
        """A source id can only be created once per peer."""
        with pytest.raises(DuplicateSource):
            authority.dispatcher.create_source(1, authority.device(1))

    def test_source_id_must_fit_32_bits(self, authority):
        """Source ids outside uint32 are refused."""
        with pytest.raises(ValueError):
            authority.dispatcher.create_source(2**32, authority.device(1))

    def test_closed_dispatcher_ignores_frames(self, hub, authority, peer):
        """After close a peer no longer applies commands."""
        peer.dispatcher.close()

        authority.source(1).volume = 0.5
        hub.flush()

        assert authority.source(1).volume == 0.5
        assert peer.device(1).volume == 1.0
        assert peer.context.closed
        with pytest.raises(RuntimeError):
            peer.dispatcher.create_source(5, peer.device(1))

    def test_random_loop_runs_on_issuer_only(self, hub, authority, peer):
        """Random clips are sent as one shots by the peer running the loop."""
        peer.source(1).loop_random_clips(1.0, 2.0, "slam", "creak")
        hub.flush()

        assert peer.context.scheduler.is_looping(1)
        assert not authority.context.scheduler.is_looping(1)
        assert len(authority.device(1).calls_named("play_one_shot")) == 1

        peer.context.scheduler.tick(2.0)
        hub.flush()
        assert len(authority.device(1).calls_named("play_one_shot")) == 2

        peer.source(1).stop_loop_random_clips()
        peer.context.scheduler.tick(10.0)
        hub.flush()
        assert len(peer.device(1).calls_named("play_one_shot")) == 2

    def test_context_events(self, authority):
        """Listeners are told about source and link changes."""
        events = []
        remove = authority.context.add_event_listener(events.append)

        authority.context.add_link(1, 2, 0.5)
        authority.context.remove_source(2)
        remove()
        authority.context.remove_source(1)

        assert [type(event).__name__ for event in events] == [
            "LinkAddedEvent",
            "SourceRemovedEvent",
        ]
