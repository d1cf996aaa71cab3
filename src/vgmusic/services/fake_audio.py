"""Fake audio subsystem for deterministic testing and dry runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .audio_backend import UNLOCK_GESTURES, UnlockListener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportCommand:
    """One transport update issued against a fake track."""

    playlist_id: str
    track_id: str
    changes: dict[str, Any]

    @property
    def is_play(self) -> bool:
        return self.changes.get("playing") is True

    @property
    def is_stop(self) -> bool:
        return self.changes.get("playing") is False


@dataclass(eq=False)
class FakeTrack:
    """In-memory track transport that records every update it receives."""

    id: str
    playlist_id: str
    name: str = ""
    playing: bool = False
    paused_time: float | None = None
    volume: float = 1.0
    fade_duration_ms: int = 0
    position: float = 0.0
    length: float | None = 180.0
    log: list[TransportCommand] = field(default_factory=list, repr=False)

    @property
    def current_time(self) -> float | None:
        return self.position

    @property
    def duration(self) -> float | None:
        return self.length

    async def update(self, **changes: Any) -> None:
        self.log.append(TransportCommand(self.playlist_id, self.id, dict(changes)))
        if "volume" in changes:
            self.volume = _clamp(float(changes["volume"]), 0.0, 1.0)
        if "paused_time" in changes:
            self.paused_time = changes["paused_time"]
        if "playing" in changes:
            playing = bool(changes["playing"])
            if playing and not self.playing:
                self.position = float(self.paused_time or 0.0)
            if not playing:
                self.position = 0.0
            self.playing = playing


class FakeAudioSubsystem:
    """Audio subsystem stand-in with a shared transport log and gesture unlock."""

    def __init__(self, *, unlocked: bool = True) -> None:
        self._unlocked = unlocked
        self._listeners: list[UnlockListener] = []
        self.commands: list[TransportCommand] = []

    @property
    def unlocked(self) -> bool:
        return self._unlocked

    def add_unlock_listener(self, listener: UnlockListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_unlock_listener(self, listener: UnlockListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def create_track(
        self,
        track_id: str,
        playlist_id: str,
        *,
        name: str = "",
        volume: float = 1.0,
        fade_duration_ms: int = 0,
        duration: float | None = 180.0,
    ) -> FakeTrack:
        return FakeTrack(
            id=track_id,
            playlist_id=playlist_id,
            name=name,
            volume=volume,
            fade_duration_ms=fade_duration_ms,
            length=duration,
            log=self.commands,
        )

    async def gesture(self, kind: str) -> None:
        """Simulate a user gesture; pointer and key presses unlock audio."""
        if kind not in UNLOCK_GESTURES or self._unlocked:
            return
        self._unlocked = True
        logger.info("Audio unlocked by %s gesture", kind)
        listeners = list(self._listeners)
        self._listeners.clear()
        for listener in listeners:
            await listener()


def _clamp(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
