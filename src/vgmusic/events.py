"""Session notification models routed to the music controller.

Each host lifecycle notification the music services react to has exactly one
dataclass here and exactly one handler in `SessionEventDispatcher`.
"""

from __future__ import annotations

from dataclasses import dataclass

from vgmusic.session import Actor, Combat, Scene, Token


@dataclass(frozen=True)
class SessionEvent:
    """Marker base type for host session notifications."""

    pass


@dataclass(frozen=True)
class ApplicationReady(SessionEvent):
    """The client finished loading shared session state."""


@dataclass(frozen=True)
class AreaEntered(SessionEvent):
    """The client's view switched to (or reloaded) an area."""

    scene: Scene | None = None


@dataclass(frozen=True)
class AreaActivationChanged(SessionEvent):
    """A scene became, or stopped being, the active area."""

    scene: Scene
    active: bool


@dataclass(frozen=True)
class CombatAdvanced(SessionEvent):
    """A combat record was updated; only turn/round changes matter."""

    combat: Combat
    turn_changed: bool = False
    round_changed: bool = False


@dataclass(frozen=True)
class CombatDeleted(SessionEvent):
    combat: Combat


@dataclass(frozen=True)
class AreaMusicFlagsChanged(SessionEvent):
    scene: Scene


@dataclass(frozen=True)
class CharacterMusicFlagsChanged(SessionEvent):
    actor: Actor


@dataclass(frozen=True)
class InstanceMusicFlagsChanged(SessionEvent):
    token: Token


@dataclass(frozen=True)
class SettingsChanged(SessionEvent):
    """A world-level music setting (suppression, silent mode, ...) changed."""

    key: str = ""
