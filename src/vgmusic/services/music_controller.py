"""Transition orchestration between the winning context and audio transport.

`MusicController` is the single authority for which context is current on this
client. Every session notification funnels into `reconcile()`, which is
leader-gated, serialized, and idempotent for an unchanged winner: a second pass
with no state change issues no transport command and no persistence write.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from vgmusic.services.audio_backend import AudioSubsystem, Track, describe_track
from vgmusic.services.context import PlaylistContext
from vgmusic.services.fading import FadeDirection, FadeRegistry, FadingTrack, SleepFn
from vgmusic.services.flag_store import FlagStore
from vgmusic.services.gates import AudioUnlockGate, is_leader
from vgmusic.services.resolver import resolve_context
from vgmusic.session import Combat, Document, Session
from vgmusic.settings_store import MusicSettings

logger = logging.getLogger(__name__)

# Used as the wrap length when the engine does not report a duration.
FALLBACK_TRACK_DURATION_S = 100.0


def resume_flag_key(track: Track) -> str:
    return f"playlist.{track.playlist_id}.{track.id}"


class MusicController:
    """Owns the current context, the fade registry and the unlock gate."""

    def __init__(
        self,
        *,
        session: Session,
        audio: AudioSubsystem,
        flag_store: FlagStore,
        settings_provider: Callable[[], MusicSettings],
        fade_sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._session = session
        self._audio = audio
        self._flags = flag_store
        self._settings_provider = settings_provider
        self._fades = FadeRegistry(on_disposed=self._on_fade_disposed, sleep=fade_sleep)
        self._unlock_gate = AudioUnlockGate(audio)
        self._current_context: PlaylistContext | None = None
        self._running = False
        self._dirty = False
        self._background: set[asyncio.Task[None]] = set()

    @property
    def current_context(self) -> PlaylistContext | None:
        return self._current_context

    @property
    def current_track(self) -> Track | None:
        context = self._current_context
        return context.track if context is not None else None

    @property
    def fades(self) -> FadeRegistry:
        return self._fades

    @property
    def unlock_gate(self) -> AudioUnlockGate:
        return self._unlock_gate

    @property
    def session(self) -> Session:
        return self._session

    def is_leader(self) -> bool:
        return is_leader(self._session)

    async def reconcile(self) -> None:
        """Resolve the winning context and transition playback to it.

        Requests arriving while a pass is running coalesce into exactly one
        follow-up pass run by the caller that started the first one.
        """
        self._dirty = True
        if self._running:
            logger.debug("Reconcile already running; coalescing request")
            return
        self._running = True
        try:
            while self._dirty:
                self._dirty = False
                await self._reconcile_once()
        finally:
            self._running = False

    def schedule_reconcile(self) -> asyncio.Task[None]:
        """Run `reconcile()` as a tracked background task."""
        task = asyncio.get_running_loop().create_task(self.reconcile())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for background reconciles and in-flight fades to settle."""
        while True:
            await self._fades.wait_idle()
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _reconcile_once(self) -> None:
        if not self.is_leader():
            logger.debug("Not the leader client; skipping reconcile")
            return
        try:
            context = resolve_context(self._session, self._settings_provider())
            await self.play_context(context)
        except Exception:
            logger.exception("Reconcile failed")

    async def play_context(self, context: PlaylistContext | None) -> None:
        """Transition from the current context to `context` (``None`` is silence)."""
        settings = self._settings_provider()
        previous_context = self._current_context
        previous = self.current_track
        new = context.track if context is not None else None
        previous_fading = previous is not None and previous in self._fades
        new_fading = new is not None and new in self._fades

        if previous is not None and previous is not new:
            logger.info(
                "Music transition %s -> %s",
                describe_track(previous),
                describe_track(new),
            )
            if previous_context is not None:
                await self._save_resume_offset(previous_context.scope, previous)
            if previous.fade_duration_ms > 0 and not previous_fading:
                self._fades.start(previous, previous.fade_duration_ms, FadeDirection.OUT)
            elif self._audio.unlocked:
                await previous.update(playing=False, paused_time=None)
            self._current_context = None

        if context is None or new is None:
            return
        self._current_context = context
        if new_fading:
            logger.debug("%s is mid-fade; deferring to fade completion", describe_track(new))
            return
        if new is previous and new.playing:
            return
        offset = self.resume_offset(context.scope, new)
        fade_in = settings.fade_in and new.fade_duration_ms > 0

        async def _start() -> None:
            changes: dict[str, Any] = {"playing": True, "paused_time": offset}
            target_volume = new.volume
            if fade_in:
                changes["volume"] = 0.0
            await new.update(**changes)
            logger.info("Playing %s from %.2fs", describe_track(new), offset)
            if fade_in:
                self._fades.start(
                    new,
                    new.fade_duration_ms,
                    FadeDirection.IN,
                    target_volume=target_volume,
                )

        await self._unlock_gate.run(_start)

    def resume_offset(self, scope: Document | None, track: Track) -> float:
        """Read the persisted resume offset for `track`, defaulting to 0."""
        if scope is None:
            return 0.0
        data = self._flags.get_flag(scope, resume_flag_key(track))
        if not isinstance(data, dict):
            return 0.0
        start = data.get("start")
        if isinstance(start, bool) or not isinstance(start, (int, float)):
            return 0.0
        return max(0.0, float(start))

    async def _save_resume_offset(self, scope: Document | None, track: Track) -> None:
        if scope is None:
            return
        if isinstance(scope, Combat) and not self._session.has_combat(scope):
            logger.debug("Combat %s is gone; not saving resume offset", scope.id)
            return
        position = track.current_time or 0.0
        duration = track.duration or FALLBACK_TRACK_DURATION_S
        payload = {
            "id": track.playlist_id,
            "trackId": track.id,
            "start": position % duration if duration > 0 else 0.0,
        }
        try:
            await self._flags.set_flag(scope, resume_flag_key(track), payload)
        except Exception:
            logger.warning(
                "Failed to save resume offset for %s on %r",
                describe_track(track),
                scope,
                exc_info=True,
            )

    def _on_fade_disposed(self, fade: FadingTrack) -> None:
        if self.current_track is fade.track:
            logger.debug(
                "Faded track %s is still current; reconciling",
                describe_track(fade.track),
            )
            self.schedule_reconcile()

