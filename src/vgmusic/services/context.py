"""Playlist context value object.

A context is one candidate declaration of "this document wants this track
playing". Contexts are rebuilt on every reconciliation pass and never mutated.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from vgmusic.services.audio_backend import Track
from vgmusic.session import Document, Playlist, SourceKind


class ContextKind(str, Enum):
    AREA = "area"
    COMBAT = "combat"


@dataclass(frozen=True)
class PlaylistContext:
    """Candidate music declaration built from a source document's flags."""

    kind: ContextKind
    source: Document
    playlist: Playlist
    track_id: str | None = None
    priority: int = 0
    scope: Document | None = None

    @property
    def source_kind(self) -> SourceKind | None:
        return self.source.source_kind

    @property
    def track(self) -> Track | None:
        """Explicit track if configured, else the first in playback order."""
        if self.track_id:
            return self.playlist.get_track(self.track_id)
        if not self.playlist.playback_order:
            return None
        return self.playlist.get_track(self.playlist.playback_order[0])

    @classmethod
    def from_source(
        cls,
        source: Document,
        kind: ContextKind,
        scope: Document | None,
        playlist_lookup: Callable[[str | None], Playlist | None],
    ) -> PlaylistContext | None:
        """Build a context from `music.<kind>.*` flags, or `None` if incomplete."""
        section = source.get_flag(f"music.{kind.value}")
        if not isinstance(section, dict):
            return None
        playlist_id = section.get("playlist")
        playlist = playlist_lookup(playlist_id if isinstance(playlist_id, str) else None)
        if playlist is None:
            return None
        track_id = section.get("initialTrack")
        context = cls(
            kind=kind,
            source=source,
            playlist=playlist,
            track_id=track_id if isinstance(track_id, str) and track_id else None,
            priority=_coerce_priority(section.get("priority")),
            scope=scope,
        )
        if context.track is None:
            return None
        return context

    def describe(self) -> str:
        kind = self.source_kind.value if self.source_kind else "?"
        return (
            f"{self.kind.value} via {kind}:{self.source.id} "
            f"playlist={self.playlist.id} priority={self.priority}"
        )


def _coerce_priority(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0
