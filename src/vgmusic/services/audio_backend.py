"""Audio subsystem contracts consumed by the music services.

The services never decode or mix audio. They issue transport updates
(`playing`, `paused_time`, `volume`) against per-track transport objects and
read back the transport fields they need for resume offsets and fades.
Concrete implementations (fake/VLC) translate these updates into engine calls.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Literal, Protocol, runtime_checkable

UnlockGesture = Literal["pointerdown", "keydown"]
UNLOCK_GESTURES: frozenset[str] = frozenset({"pointerdown", "keydown"})

UnlockListener = Callable[[], Awaitable[None]]


@runtime_checkable
class Track(Protocol):
    """Per-track transport object.

    Positions are in seconds, `fade_duration_ms` in milliseconds and `volume`
    is normalized to [0.0, 1.0].
    """

    id: str
    playlist_id: str
    name: str
    playing: bool
    paused_time: float | None
    volume: float
    fade_duration_ms: int

    @property
    def current_time(self) -> float | None: ...

    @property
    def duration(self) -> float | None: ...

    async def update(self, **changes: Any) -> None: ...


class AudioSubsystem(Protocol):
    """Host audio engine state consumed by the unlock gate and orchestrator."""

    @property
    def unlocked(self) -> bool: ...

    def add_unlock_listener(self, listener: UnlockListener) -> None: ...

    def remove_unlock_listener(self, listener: UnlockListener) -> None: ...


def track_key(track: Track) -> tuple[str, str]:
    """Stable identity of a track across reconciliation passes."""
    return (track.playlist_id, track.id)


def describe_track(track: Track | None) -> str:
    if track is None:
        return "<silence>"
    label = track.name or track.id
    return f"{label} [{track.playlist_id}/{track.id}]"
