"""
Tests for timed local effects.

Fades and random clip loops are driven with explicit ``tick`` calls, so the
tests do not depend on wall clock time except for the asyncio driver test.
"""

import asyncio
import random

import pytest

from aionetaudio.device import MemoryAudioDevice
from aionetaudio.errors import LoopAlreadyRunning
from aionetaudio.models.types import FadeKind
from aionetaudio.scheduler import FadeScheduler


class FakeSource:
    """Just enough of a NetworkAudioSource for the scheduler."""

    def __init__(self, source_id=1, volume=1.0):
        self.source_id = source_id
        self.device = MemoryAudioDevice(volume=volume, clip="loop.wav", playing=True)
        self.one_shots = []

    def play_one_shot(self, clip, volume_scale=1.0):
        self.one_shots.append(clip)


class TestFades:
    """Tests for fade in and fade out."""

    def test_fade_out_ramps_down_then_stops(self):
        """A fade out decreases the volume, stops, then restores the start volume."""
        scheduler = FadeScheduler()
        source = FakeSource()
        scheduler.fade_out(source, 2.0, 0.8)

        volumes = []
        for _ in range(7):
            scheduler.tick(0.25)
            volumes.append(source.device.volume)

        assert volumes == sorted(volumes, reverse=True)
        assert len(set(volumes)) == 7
        assert 0.0 < volumes[-1] < 0.8
        assert source.device.is_playing

        scheduler.tick(0.25)

        assert not source.device.is_playing
        assert source.device.calls_named("stop") == [()]
        assert source.device.volume == pytest.approx(0.8)
        assert scheduler.fade_for(1) is None

    def test_fade_out_starts_at_given_volume(self):
        """The start volume is applied when the fade starts."""
        scheduler = FadeScheduler()
        source = FakeSource(volume=0.2)

        task = scheduler.fade_out(source, 1.0, 0.6)

        assert source.device.volume == pytest.approx(0.6)
        assert task.kind is FadeKind.FADING_OUT
        assert scheduler.fade_for(1) is task

    def test_fade_in_reaches_target(self):
        """A fade in ends exactly on its target volume."""
        scheduler = FadeScheduler()
        source = FakeSource(volume=0.2)
        scheduler.fade_in(source, 1.0, 1.0, 0.2)

        scheduler.tick(0.5)
        assert source.device.volume == pytest.approx(0.6)

        scheduler.tick(0.5)
        assert source.device.volume == 1.0
        assert source.device.is_playing
        assert scheduler.fade_for(1) is None

    def test_zero_duration(self):
        """A fade without duration completes on the next tick."""
        scheduler = FadeScheduler()
        source = FakeSource()
        scheduler.fade_out(source, 0.0, 0.5)

        scheduler.tick(0.0)

        assert not source.device.is_playing
        assert source.device.volume == pytest.approx(0.5)

    def test_cancel_leaves_volume(self):
        """A cancelled fade keeps the volume it reached."""
        scheduler = FadeScheduler()
        source = FakeSource()
        scheduler.fade_out(source, 2.0, 0.8)
        scheduler.tick(0.5)
        reached = source.device.volume

        scheduler.cancel_fade(1)
        scheduler.tick(10.0)

        assert source.device.volume == reached
        assert source.device.is_playing
        assert scheduler.fade_for(1) is None

    def test_new_fade_replaces_running_one(self):
        """Only one fade runs per source."""
        scheduler = FadeScheduler()
        source = FakeSource()
        first = scheduler.fade_out(source, 2.0, 0.8)
        scheduler.tick(0.5)

        second = scheduler.fade_in(source, 1.0, 1.0, source.device.volume)

        assert not first.active
        assert second.active
        scheduler.tick(1.0)
        assert source.device.volume == 1.0
        assert source.device.is_playing

    def test_fades_on_different_sources_are_independent(self):
        """Each source has its own fade."""
        scheduler = FadeScheduler()
        first, second = FakeSource(1), FakeSource(2)
        scheduler.fade_out(first, 1.0, 1.0)
        scheduler.fade_out(second, 2.0, 1.0)

        scheduler.tick(1.0)

        assert not first.device.is_playing
        assert second.device.is_playing


class TestRandomClipLoop:
    """Tests for random clip looping."""

    def test_first_clip_plays_immediately(self):
        """Starting a loop plays one clip right away."""
        scheduler = FadeScheduler(random.Random(1234))
        source = FakeSource()

        loop = scheduler.loop_random_clips(source, 1.0, 2.0, ["a", "b"])

        assert len(source.one_shots) == 1
        assert source.one_shots[0] in {"a", "b"}
        assert 1.0 <= loop.remaining <= 2.0
        assert scheduler.is_looping(1)

    def test_plays_when_interval_elapsed(self):
        """The next clip plays once its interval elapsed, not before."""
        scheduler = FadeScheduler(random.Random(1234))
        source = FakeSource()
        loop = scheduler.loop_random_clips(source, 1.0, 2.0, ["a", "b"])

        scheduler.tick(0.5)
        assert len(source.one_shots) == 1

        scheduler.tick(loop.remaining)
        assert len(source.one_shots) == 2

    def test_rate_stays_within_bounds(self):
        """Over time the number of clips matches the interval range."""
        scheduler = FadeScheduler(random.Random(99))
        source = FakeSource()
        scheduler.loop_random_clips(source, 1.0, 2.0, ["a", "b", "c"])

        for _ in range(200):
            scheduler.tick(0.1)

        assert 10 <= len(source.one_shots) <= 21
        assert set(source.one_shots) <= {"a", "b", "c"}

    def test_long_tick_plays_one_clip(self):
        """A tick spanning many intervals plays one clip, not a burst."""
        scheduler = FadeScheduler(random.Random(7))
        source = FakeSource()
        loop = scheduler.loop_random_clips(source, 1.0, 2.0, ["a", "b"])

        scheduler.tick(30.0)

        assert len(source.one_shots) == 2
        assert 1.0 <= loop.remaining <= 2.0

    def test_stop(self):
        """A stopped loop plays nothing more."""
        scheduler = FadeScheduler(random.Random(1))
        source = FakeSource()
        scheduler.loop_random_clips(source, 1.0, 2.0, ["a"])

        assert scheduler.stop_loop_random_clips(1)
        scheduler.tick(100.0)

        assert source.one_shots == ["a"]
        assert not scheduler.is_looping(1)
        assert not scheduler.stop_loop_random_clips(1)

    def test_double_start_rejected(self):
        """Starting a second loop on the same source fails."""
        scheduler = FadeScheduler()
        source = FakeSource()
        scheduler.loop_random_clips(source, 1.0, 2.0, ["a"])

        with pytest.raises(LoopAlreadyRunning):
            scheduler.loop_random_clips(source, 1.0, 2.0, ["b"])

    def test_restart_after_stop(self):
        """A stopped loop can be started again."""
        scheduler = FadeScheduler()
        source = FakeSource()
        scheduler.loop_random_clips(source, 1.0, 2.0, ["a"])
        scheduler.stop_loop_random_clips(1)

        scheduler.loop_random_clips(source, 1.0, 2.0, ["b"])

        assert source.one_shots == ["a", "b"]

    @pytest.mark.parametrize(
        ("min_interval", "max_interval", "clips"),
        [(1.0, 2.0, []), (2.0, 1.0, ["a"]), (-1.0, 1.0, ["a"]), (0.0, 0.0, ["a"])],
    )
    def test_invalid_arguments(self, min_interval, max_interval, clips):
        """Empty clip lists and bad intervals are rejected."""
        scheduler = FadeScheduler()

        with pytest.raises(ValueError):
            scheduler.loop_random_clips(FakeSource(), min_interval, max_interval, clips)
        assert not scheduler.is_looping(1)


class TestScheduler:
    """Tests for cancellation and the asyncio driver."""

    def test_cancel_source(self):
        """Cancelling a source stops its fade and its loop."""
        scheduler = FadeScheduler()
        source = FakeSource()
        scheduler.fade_out(source, 1.0, 1.0)
        scheduler.loop_random_clips(source, 1.0, 2.0, ["a"])

        scheduler.cancel_source(1)
        scheduler.tick(5.0)

        assert source.device.is_playing
        assert source.one_shots == ["a"]

    def test_cancel_all(self):
        """cancel_all stops every task."""
        scheduler = FadeScheduler()
        sources = [FakeSource(1), FakeSource(2)]
        for source in sources:
            scheduler.fade_out(source, 1.0, 1.0)

        scheduler.cancel_all()
        scheduler.tick(5.0)

        assert all(source.device.is_playing for source in sources)

    def test_failing_task_does_not_stop_others(self):
        """An error in one task is logged and the task is dropped."""
        scheduler = FadeScheduler()
        broken, healthy = FakeSource(1), FakeSource(2)
        scheduler.loop_random_clips(broken, 0.5, 0.5, ["a"])
        scheduler.fade_out(healthy, 1.0, 1.0)

        def explode(clip, volume_scale=1.0):
            raise RuntimeError("device gone")

        broken.play_one_shot = explode
        scheduler.tick(1.0)

        assert not healthy.device.is_playing
        assert not scheduler.is_looping(1)

    def test_asyncio_driver(self):
        """start() ticks the scheduler from the event loop."""

        async def run():
            scheduler = FadeScheduler()
            source = FakeSource()
            scheduler.start(0.005)
            assert scheduler.running
            scheduler.fade_out(source, 0.02, 1.0)
            async with asyncio.timeout(5):
                while source.device.is_playing:
                    await asyncio.sleep(0.005)
            await scheduler.stop()
            return scheduler, source

        scheduler, source = asyncio.run(run())

        assert not scheduler.running
        assert source.device.calls_named("stop") == [()]
