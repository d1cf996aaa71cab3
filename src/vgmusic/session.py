"""Replicated session world model consumed by the music services.

The host keeps this state in sync across clients; the music services only read
it (and write document flags through a `FlagStore`). Documents compare by
identity so that "is this the same entity" checks never depend on field values.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from vgmusic import MODULE_ID
from vgmusic.services.audio_backend import Track


class SourceKind(str, Enum):
    """Closed set of document kinds that may declare music."""

    SCENE = "Scene"
    TOKEN = "Token"
    PROTOTYPE_TOKEN = "PrototypeToken"
    ACTOR = "Actor"
    DEFAULT_MUSIC = "DefaultMusic"


@dataclass(eq=False)
class Document:
    """Base session document with namespaced flag storage."""

    source_kind: ClassVar[SourceKind | None] = None

    id: str
    flags: dict[str, Any] = field(default_factory=dict)

    def get_flag(self, key: str, namespace: str = MODULE_ID) -> Any:
        """Return the flag value at dotted `key`, or `None` when absent."""
        node: Any = self.flags.get(namespace)
        for part in key.split("."):
            if not isinstance(node, Mapping):
                return None
            node = node.get(part)
        return node

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


@dataclass(eq=False, repr=False)
class Scene(Document):
    source_kind: ClassVar[SourceKind | None] = SourceKind.SCENE

    active: bool = False


@dataclass(eq=False, repr=False)
class PrototypeToken(Document):
    """Token template shared by every unlinked token of an actor."""

    source_kind: ClassVar[SourceKind | None] = SourceKind.PROTOTYPE_TOKEN


@dataclass(eq=False, repr=False)
class Actor(Document):
    source_kind: ClassVar[SourceKind | None] = SourceKind.ACTOR

    prototype_token: PrototypeToken | None = None


@dataclass(eq=False, repr=False)
class Token(Document):
    source_kind: ClassVar[SourceKind | None] = SourceKind.TOKEN

    actor: Actor | None = None
    actor_link: bool = False


@dataclass(eq=False, repr=False)
class DefaultMusicConfig(Document):
    """Global default-music record stored in settings."""

    source_kind: ClassVar[SourceKind | None] = SourceKind.DEFAULT_MUSIC


@dataclass(eq=False)
class Combatant:
    token: Token | None = None
    actor: Actor | None = None

    def __post_init__(self) -> None:
        if self.actor is None and self.token is not None:
            self.actor = self.token.actor


@dataclass(eq=False, repr=False)
class Combat(Document):
    """Combat encounter; a persistence scope, never a music source."""

    scene: Scene | None = None
    turns: list[Combatant] = field(default_factory=list)
    turn: int | None = None
    round: int = 0
    started: bool = False
    active: bool = False

    @property
    def current_combatant(self) -> Combatant | None:
        if self.turn is None or not 0 <= self.turn < len(self.turns):
            return None
        return self.turns[self.turn]


@dataclass(eq=False)
class Playlist:
    id: str
    name: str = ""
    tracks: dict[str, Track] = field(default_factory=dict)
    playback_order: list[str] = field(default_factory=list)

    def get_track(self, track_id: str | None) -> Track | None:
        if not track_id:
            return None
        return self.tracks.get(track_id)


@dataclass(frozen=True)
class User:
    id: str
    name: str = ""
    is_gm: bool = False
    active: bool = False


@dataclass(eq=False)
class Session:
    """Snapshot-able view of the shared session as seen by one client."""

    user_id: str
    scenes: list[Scene] = field(default_factory=list)
    actors: list[Actor] = field(default_factory=list)
    combats: list[Combat] = field(default_factory=list)
    playlists: dict[str, Playlist] = field(default_factory=dict)
    users: list[User] = field(default_factory=list)

    @property
    def active_scene(self) -> Scene | None:
        return next((scene for scene in self.scenes if scene.active), None)

    @property
    def current_combat(self) -> Combat | None:
        """Combat on the active scene, else the first combat flagged active."""
        scene = self.active_scene
        if scene is not None:
            for combat in self.combats:
                if combat.scene is scene:
                    return combat
        return next((combat for combat in self.combats if combat.active), None)

    def get_playlist(self, playlist_id: str | None) -> Playlist | None:
        if not playlist_id:
            return None
        return self.playlists.get(playlist_id)

    def has_combat(self, combat: Combat) -> bool:
        return any(existing is combat for existing in self.combats)

    def add_playlists(self, playlists: Iterable[Playlist]) -> None:
        for playlist in playlists:
            self.playlists[playlist.id] = playlist
