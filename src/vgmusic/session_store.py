"""JSON session snapshot loader.

A snapshot describes the replicated session the way the host would present it
(users, playlists, scenes, actors, tokens, combats). Malformed entries are
skipped with a warning; only a snapshot that cannot describe a session at all
raises `SessionFormatError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vgmusic import MODULE_ID
from vgmusic.services.audio_backend import Track
from vgmusic.session import (
    Actor,
    Combat,
    Combatant,
    Playlist,
    PrototypeToken,
    Scene,
    Session,
    Token,
    User,
)

logger = logging.getLogger(__name__)


class SessionFormatError(ValueError):
    """Raised when a snapshot cannot be turned into a session."""


@dataclass(frozen=True)
class TrackSpec:
    """Backend-neutral description of one playlist track."""

    track_id: str
    playlist_id: str
    name: str = ""
    path: str = ""
    volume: float = 1.0
    fade_duration_ms: int = 0
    duration: float | None = None


TrackFactory = Callable[[TrackSpec], Track]


def load_session(path: Path, track_factory: TrackFactory) -> Session:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SessionFormatError(f"Cannot read session file '{path}': {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SessionFormatError(f"Session file '{path}' is invalid JSON: {exc}") from exc
    return parse_session(data, track_factory)


def parse_session(data: Any, track_factory: TrackFactory) -> Session:
    if not isinstance(data, dict):
        raise SessionFormatError("Session snapshot must be a JSON object.")
    user_id = data.get("user_id")
    if not isinstance(user_id, str) or not user_id:
        raise SessionFormatError("Session snapshot needs a non-empty 'user_id'.")

    session = Session(user_id=user_id)
    session.users = [user for user in map(_parse_user, _entries(data, "users")) if user]
    session.add_playlists(
        playlist
        for playlist in (
            _parse_playlist(entry, track_factory) for entry in _entries(data, "playlists")
        )
        if playlist is not None
    )

    scenes: dict[str, Scene] = {}
    for entry in _entries(data, "scenes"):
        scene_id = _id_of(entry, "scene")
        if scene_id is not None:
            scenes[scene_id] = Scene(
                id=scene_id,
                flags=_flags_of(entry),
                active=entry.get("active") is True,
            )
    session.scenes = list(scenes.values())

    actors: dict[str, Actor] = {}
    for entry in _entries(data, "actors"):
        actor_id = _id_of(entry, "actor")
        if actor_id is None:
            continue
        prototype = entry.get("prototype")
        actors[actor_id] = Actor(
            id=actor_id,
            flags=_flags_of(entry),
            prototype_token=PrototypeToken(
                id=f"{actor_id}.prototype",
                flags=_flags_of(prototype) if isinstance(prototype, dict) else {},
            ),
        )
    session.actors = list(actors.values())

    tokens: dict[str, Token] = {}
    for entry in _entries(data, "tokens"):
        token_id = _id_of(entry, "token")
        if token_id is None:
            continue
        tokens[token_id] = Token(
            id=token_id,
            flags=_flags_of(entry),
            actor=actors.get(str(entry.get("actor"))),
            actor_link=entry.get("linked") is True,
        )

    for entry in _entries(data, "combats"):
        combat_id = _id_of(entry, "combat")
        if combat_id is None:
            continue
        turns = [
            Combatant(
                token=tokens.get(str(turn.get("token"))),
                actor=actors.get(str(turn.get("actor"))),
            )
            for turn in entry.get("turns", [])
            if isinstance(turn, dict)
        ]
        turn_index = entry.get("turn")
        round_number = entry.get("round")
        session.combats.append(
            Combat(
                id=combat_id,
                flags=_flags_of(entry),
                scene=scenes.get(str(entry.get("scene"))),
                turns=turns,
                turn=turn_index
                if isinstance(turn_index, int) and not isinstance(turn_index, bool)
                else None,
                round=round_number if isinstance(round_number, int) else 0,
                started=entry.get("started") is True,
                active=entry.get("active") is True,
            )
        )
    logger.info(
        "Loaded session: %d scene(s), %d combat(s), %d playlist(s)",
        len(session.scenes),
        len(session.combats),
        len(session.playlists),
    )
    return session


def _entries(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = data.get(key, [])
    if not isinstance(value, list):
        logger.warning("Session key '%s' is not a list; ignoring it.", key)
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _id_of(entry: dict[str, Any], label: str) -> str | None:
    value = entry.get("id")
    if isinstance(value, str) and value:
        return value
    logger.warning("Skipping %s entry without an id: %r", label, entry)
    return None


def _flags_of(entry: dict[str, Any]) -> dict[str, Any]:
    flags = entry.get("flags")
    if not isinstance(flags, dict):
        return {}
    return {MODULE_ID: flags}


def _parse_user(entry: dict[str, Any]) -> User | None:
    user_id = _id_of(entry, "user")
    if user_id is None:
        return None
    name = entry.get("name")
    return User(
        id=user_id,
        name=name if isinstance(name, str) else "",
        is_gm=entry.get("gm") is True,
        active=entry.get("active") is True,
    )


def _parse_playlist(
    entry: dict[str, Any], track_factory: TrackFactory
) -> Playlist | None:
    playlist_id = _id_of(entry, "playlist")
    if playlist_id is None:
        return None
    name = entry.get("name")
    playlist = Playlist(id=playlist_id, name=name if isinstance(name, str) else "")
    for track_entry in entry.get("tracks", []):
        if not isinstance(track_entry, dict):
            continue
        track_id = _id_of(track_entry, "track")
        if track_id is None:
            continue
        spec = _track_spec(playlist_id, track_id, track_entry)
        playlist.tracks[track_id] = track_factory(spec)
    order = entry.get("order")
    if isinstance(order, list):
        playlist.playback_order = [
            track_id for track_id in order if isinstance(track_id, str)
        ]
    else:
        playlist.playback_order = list(playlist.tracks)
    return playlist


def _track_spec(playlist_id: str, track_id: str, entry: dict[str, Any]) -> TrackSpec:
    def _number(value: Any, default: float) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return default
        return float(value)

    name = entry.get("name")
    path = entry.get("path")
    duration = entry.get("duration")
    return TrackSpec(
        track_id=track_id,
        playlist_id=playlist_id,
        name=name if isinstance(name, str) else "",
        path=path if isinstance(path, str) else "",
        volume=max(0.0, min(_number(entry.get("volume"), 1.0), 1.0)),
        fade_duration_ms=max(0, int(_number(entry.get("fade_ms"), 0))),
        duration=_number(duration, 0.0) or None,
    )
