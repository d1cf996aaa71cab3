"""Tests for volume fades and their disposal guarantees."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from vgmusic.services.fading import (
    FADE_STEPS,
    FadeDirection,
    FadeRegistry,
    FadeState,
    FadingTrack,
)
from vgmusic.services.fake_audio import FakeAudioSubsystem, FakeTrack


async def _no_sleep(_seconds: float) -> None:
    return None


async def _sleep_forever(_seconds: float) -> None:
    await asyncio.Event().wait()


def _playing_track(volume: float = 0.8, fade_ms: int = 1000) -> FakeTrack:
    track = FakeAudioSubsystem().create_track(
        "t1", "p1", volume=volume, fade_duration_ms=fade_ms
    )
    track.playing = True
    return track


class FlakyTrack(FakeTrack):
    """Track whose volume updates fail after a number of successful calls."""

    fail_after: int = 0

    async def update(self, **changes: Any) -> None:
        if "playing" not in changes:
            if self.fail_after <= 0:
                raise RuntimeError("volume write rejected")
            self.fail_after -= 1
        await super().update(**changes)


def test_fade_out_ramps_then_stops_and_restores_volume() -> None:
    track = _playing_track(volume=0.8)
    disposed: list[FadingTrack] = []

    async def run() -> None:
        fade = FadingTrack(
            track,
            1000,
            FadeDirection.OUT,
            on_disposed=disposed.append,
            sleep=_no_sleep,
        )
        fade.start()
        assert fade.state is FadeState.FADING
        assert fade.task is not None
        await fade.task

    asyncio.run(run())

    volumes = [c.changes["volume"] for c in track.log[:FADE_STEPS]]
    assert len(track.log) == FADE_STEPS + 1
    assert volumes == sorted(volumes, reverse=True)
    assert volumes[-1] == pytest.approx(0.0)
    assert track.log[-1].changes == {"playing": False, "paused_time": None, "volume": 0.8}
    assert not track.playing
    assert track.volume == pytest.approx(0.8)
    assert [fade.state for fade in disposed] == [FadeState.DISPOSED]


def test_fade_out_of_stopped_track_is_a_no_op() -> None:
    track = _playing_track()
    track.playing = False
    disposed: list[FadingTrack] = []

    async def run() -> None:
        fade = FadingTrack(
            track, 1000, FadeDirection.OUT, on_disposed=disposed.append, sleep=_no_sleep
        )
        fade.start()
        assert fade.task is not None
        await fade.task

    asyncio.run(run())

    assert track.log == []
    assert len(disposed) == 1


def test_fade_out_failure_still_stops_the_track(caplog) -> None:
    track = FlakyTrack(id="t1", playlist_id="p1", volume=0.6, playing=True)
    disposed: list[FadingTrack] = []

    async def run() -> None:
        fade = FadingTrack(
            track, 1000, FadeDirection.OUT, on_disposed=disposed.append, sleep=_no_sleep
        )
        fade.start()
        assert fade.task is not None
        await fade.task

    asyncio.run(run())

    assert not track.playing
    assert track.log[-1].changes == {"playing": False, "paused_time": None, "volume": 0.6}
    assert len(disposed) == 1
    assert any("Fade out failed" in record.message for record in caplog.records)


def test_fade_in_failure_is_abandoned_without_restore(caplog) -> None:
    track = FlakyTrack(id="t1", playlist_id="p1", volume=0.6, playing=True)
    track.fail_after = 3
    disposed: list[FadingTrack] = []

    async def run() -> None:
        fade = FadingTrack(
            track,
            1000,
            FadeDirection.IN,
            target_volume=0.6,
            on_disposed=disposed.append,
            sleep=_no_sleep,
        )
        fade.start()
        assert fade.task is not None
        await fade.task

    asyncio.run(run())

    assert len(track.log) == 3
    assert track.volume == pytest.approx(0.06)
    assert track.playing
    assert len(disposed) == 1
    assert any("Fade in failed" in record.message for record in caplog.records)


def test_fade_in_ramps_up_to_target_volume() -> None:
    track = _playing_track(volume=0.5)

    async def run() -> None:
        fade = FadingTrack(
            track, 400, FadeDirection.IN, target_volume=0.5, sleep=_no_sleep
        )
        fade.start()
        assert fade.task is not None
        await fade.task

    asyncio.run(run())

    volumes = [c.changes["volume"] for c in track.log]
    assert volumes[0] == 0.0
    assert len(volumes) == FADE_STEPS + 1
    assert volumes == sorted(volumes)
    assert volumes[-1] == pytest.approx(0.5)


def test_guard_disposes_overrunning_fade_out() -> None:
    track = _playing_track(volume=1.0, fade_ms=0)
    disposed: list[FadingTrack] = []

    async def run() -> None:
        fade = FadingTrack(
            track, 0, FadeDirection.OUT, on_disposed=disposed.append, sleep=_sleep_forever
        )
        fade.start()
        await asyncio.sleep(0.2)
        assert fade.state is FadeState.DISPOSED
        assert fade.task is not None
        assert fade.task.cancelled()

    asyncio.run(run())

    assert len(disposed) == 1
    assert not track.playing
    assert track.log[-1].changes == {"playing": False, "paused_time": None, "volume": 1.0}


def test_guard_disposes_only_after_track_is_stopped() -> None:
    track = _playing_track(volume=0.9, fade_ms=0)
    seen: list[tuple[bool, float]] = []

    def on_disposed(fade: FadingTrack) -> None:
        seen.append((fade.track.playing, fade.track.volume))

    async def run() -> None:
        fade = FadingTrack(
            track, 0, FadeDirection.OUT, on_disposed=on_disposed, sleep=_sleep_forever
        )
        fade.start()
        await asyncio.sleep(0.2)

    asyncio.run(run())

    assert seen == [(False, pytest.approx(0.9))]


def test_fade_cancelled_before_it_runs_is_still_disposed() -> None:
    track = _playing_track()
    disposed: list[FadingTrack] = []

    async def run() -> None:
        fade = FadingTrack(track, 1000, FadeDirection.OUT, on_disposed=disposed.append)
        fade.start()
        assert fade.task is not None
        fade.task.cancel()
        await asyncio.gather(fade.task, return_exceptions=True)
        await asyncio.sleep(0)
        assert fade.state is FadeState.DISPOSED

    asyncio.run(run())

    assert len(disposed) == 1
    assert track.log == []
    assert track.playing


def test_guard_restores_volume_for_overrunning_fade_in() -> None:
    track = _playing_track(volume=0.7)

    async def run() -> None:
        fade = FadingTrack(
            track, 0, FadeDirection.IN, target_volume=0.7, sleep=_sleep_forever
        )
        fade.start()
        await asyncio.sleep(0.2)
        assert fade.state is FadeState.DISPOSED

    asyncio.run(run())

    assert track.playing
    assert track.volume == pytest.approx(0.7)


def test_registry_keeps_one_fade_per_track() -> None:
    track = _playing_track()
    released: list[FadingTrack] = []

    async def run() -> None:
        registry = FadeRegistry(on_disposed=released.append, sleep=_no_sleep)
        first = registry.start(track, 1000, FadeDirection.OUT)
        second = registry.start(track, 1000, FadeDirection.IN)
        assert second is first
        assert track in registry
        assert len(registry) == 1

        await registry.wait_idle()
        assert track not in registry
        assert len(registry) == 0

    asyncio.run(run())

    assert len(released) == 1
    assert released[0].direction is FadeDirection.OUT


def test_registry_membership_ignores_non_tracks() -> None:
    registry = FadeRegistry()
    assert object() not in registry
    assert None not in registry
