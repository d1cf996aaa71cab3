"""Per-track volume fades with a guaranteed disposal deadline.

A `FadingTrack` moves through `armed -> fading -> disposed`. Its lifetime is
independent from the controller's notion of the current track: the registry
only records that a transition is in flight for a track, and disposal hands
control back to the controller so it can reconcile again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from vgmusic.services.audio_backend import Track, describe_track, track_key

logger = logging.getLogger(__name__)

FADE_STEPS = 20
# Slack past the nominal fade length before the guard forces disposal.
FADE_GUARD_MS = 50

DisposeHook = Callable[["FadingTrack"], None]
SleepFn = Callable[[float], Awaitable[None]]


class FadeDirection(str, Enum):
    OUT = "out"
    IN = "in"


class FadeState(str, Enum):
    ARMED = "armed"
    FADING = "fading"
    DISPOSED = "disposed"


class FadingTrack:
    """Linear volume ramp over `FADE_STEPS` evenly spaced steps."""

    def __init__(
        self,
        track: Track,
        duration_ms: int,
        direction: FadeDirection,
        *,
        target_volume: float | None = None,
        on_disposed: DisposeHook | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.track = track
        self.duration_ms = max(0, int(duration_ms))
        self.direction = direction
        self.target_volume = track.volume if target_volume is None else target_volume
        self.state = FadeState.ARMED
        self._on_disposed = on_disposed
        self._sleep = sleep
        self._start_volume: float | None = None
        self._task: asyncio.Task[None] | None = None
        self._guard: asyncio.TimerHandle | None = None

    @property
    def key(self) -> tuple[str, str]:
        return track_key(self.track)

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self) -> None:
        """Arm the disposal guard and launch the ramp on the running loop."""
        if self.state is not FadeState.ARMED:
            return
        loop = asyncio.get_running_loop()
        self.state = FadeState.FADING
        self._guard = loop.call_later(
            (self.duration_ms + FADE_GUARD_MS) / 1000, self._on_guard_expired
        )
        self._task = loop.create_task(self._run())
        # A task cancelled before its first step never enters `_run`.
        self._task.add_done_callback(lambda _task: self.dispose())

    def dispose(self) -> None:
        if self.state is FadeState.DISPOSED:
            return
        self.state = FadeState.DISPOSED
        if self._guard is not None:
            self._guard.cancel()
            self._guard = None
        logger.debug(
            "Fade %s disposed for %s", self.direction.value, describe_track(self.track)
        )
        if self._on_disposed is not None:
            try:
                self._on_disposed(self)
            except Exception:
                logger.warning("Fade disposal hook failed", exc_info=True)

    async def _run(self) -> None:
        try:
            if self.direction is FadeDirection.OUT:
                await self._fade_out()
            else:
                await self._fade_in()
        except asyncio.CancelledError:
            await self._settle_after_cancel()
            self.dispose()
            raise
        except Exception:
            logger.warning(
                "Fade %s failed for %s",
                self.direction.value,
                describe_track(self.track),
                exc_info=True,
            )
            if self.direction is FadeDirection.OUT:
                await self._hard_stop()
        self.dispose()

    async def _fade_out(self) -> None:
        track = self.track
        if not track.playing:
            return
        start_volume = track.volume
        self._start_volume = start_volume
        step_s = self.duration_ms / FADE_STEPS / 1000
        volume_step = start_volume / FADE_STEPS
        for index in range(FADE_STEPS):
            await track.update(volume=max(0.0, start_volume - volume_step * (index + 1)))
            await self._sleep(step_s)
        await track.update(playing=False, paused_time=None, volume=start_volume)

    async def _fade_in(self) -> None:
        track = self.track
        target = self.target_volume
        step_s = self.duration_ms / FADE_STEPS / 1000
        volume_step = target / FADE_STEPS
        await track.update(volume=0.0)
        for index in range(FADE_STEPS):
            await track.update(volume=min(target, volume_step * (index + 1)))
            await self._sleep(step_s)

    async def _hard_stop(self) -> None:
        changes: dict[str, object] = {"playing": False, "paused_time": None}
        if self._start_volume is not None:
            changes["volume"] = self._start_volume
        try:
            await self.track.update(**changes)
        except Exception:
            logger.warning(
                "Hard stop failed for %s", describe_track(self.track), exc_info=True
            )

    async def _settle_after_cancel(self) -> None:
        if self.direction is FadeDirection.OUT:
            if self._start_volume is not None:
                await self._hard_stop()
            return
        try:
            await self.track.update(volume=self.target_volume)
        except Exception:
            logger.warning(
                "Volume restore failed for %s",
                describe_track(self.track),
                exc_info=True,
            )

    def _on_guard_expired(self) -> None:
        self._guard = None
        if self.state is FadeState.DISPOSED:
            return
        logger.info(
            "Fade %s overran its deadline for %s",
            self.direction.value,
            describe_track(self.track),
        )
        if self._task is None or self._task.done():
            self.dispose()
            return
        # Disposal follows once the cancelled ramp has settled the transport.
        self._task.cancel()


class FadeRegistry:
    """Active fades keyed by track identity; at most one fade per track."""

    def __init__(
        self,
        *,
        on_disposed: DisposeHook | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._fades: dict[tuple[str, str], FadingTrack] = {}
        self._on_disposed = on_disposed
        self._sleep = sleep

    def __contains__(self, track: object) -> bool:
        try:
            key = track_key(track)  # type: ignore[arg-type]
        except AttributeError:
            return False
        return key in self._fades

    def __len__(self) -> int:
        return len(self._fades)

    def start(
        self,
        track: Track,
        duration_ms: int,
        direction: FadeDirection,
        *,
        target_volume: float | None = None,
    ) -> FadingTrack:
        """Start a fade unless one is already running for this track."""
        existing = self._fades.get(track_key(track))
        if existing is not None:
            logger.debug(
                "Fade already active for %s (%s); not starting %s",
                describe_track(track),
                existing.direction.value,
                direction.value,
            )
            return existing
        fade = FadingTrack(
            track,
            duration_ms,
            direction,
            target_volume=target_volume,
            on_disposed=self._release,
            sleep=self._sleep,
        )
        self._fades[fade.key] = fade
        logger.debug(
            "Fade %s started for %s over %d ms",
            direction.value,
            describe_track(track),
            fade.duration_ms,
        )
        fade.start()
        return fade

    async def wait_idle(self) -> None:
        """Wait for every in-flight ramp task to finish."""
        while True:
            tasks = [
                fade.task
                for fade in self._fades.values()
                if fade.task is not None and not fade.task.done()
            ]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def _release(self, fade: FadingTrack) -> None:
        if self._fades.get(fade.key) is not fade:
            return
        del self._fades[fade.key]
        if self._on_disposed is not None:
            self._on_disposed(fade)
