"""Candidate context collection from current session state."""

from __future__ import annotations

import logging

from vgmusic.services.context import ContextKind, PlaylistContext
from vgmusic.session import Actor, Document, Session, Token
from vgmusic.settings_store import MusicSettings

logger = logging.getLogger(__name__)

COMBAT_PLAYLIST_FLAG = "music.combat.playlist"
USE_TOKEN_MUSIC_FLAG = "useTokenMusic"


def resolve_combatant_music_source(
    token: Token | None, actor: Actor | None
) -> Document | None:
    """Pick the document whose combat music represents a combatant.

    Per-instance token overrides beat the actor's prototype token, which beats
    the actor itself. A linked token only wins over a declaring prototype or
    actor when it carries the `useTokenMusic` flag.
    """
    if token is None and actor is None:
        return None
    token_has_music = bool(token is not None and token.get_flag(COMBAT_PLAYLIST_FLAG))
    prototype = actor.prototype_token if actor is not None else None
    prototype_has_music = bool(
        prototype is not None and prototype.get_flag(COMBAT_PLAYLIST_FLAG)
    )
    actor_has_music = bool(actor is not None and actor.get_flag(COMBAT_PLAYLIST_FLAG))

    if token is not None and not token.actor_link:
        if token_has_music:
            return token
        return actor if actor_has_music else None

    if token is not None:
        if token_has_music:
            prefer_token = bool(token.get_flag(USE_TOKEN_MUSIC_FLAG))
            if prefer_token or (not prototype_has_music and not actor_has_music):
                return token
        if prototype_has_music:
            return prototype
    return actor if actor_has_music else None


def collect_contexts(session: Session, settings: MusicSettings) -> list[PlaylistContext]:
    """Build every candidate context for the current moment, in collection order."""
    contexts: list[PlaylistContext] = []
    scene = session.active_scene
    combat = session.current_combat
    lookup = session.get_playlist

    def _emit(source: Document, kind: ContextKind, scope: Document | None) -> None:
        context = PlaylistContext.from_source(source, kind, scope, lookup)
        if context is not None:
            contexts.append(context)

    if scene is not None:
        _emit(scene, ContextKind.AREA, scene)
        _emit(scene, ContextKind.COMBAT, combat)
    if combat is not None and combat.current_combatant is not None:
        for combatant in combat.turns:
            source = resolve_combatant_music_source(combatant.token, combatant.actor)
            if source is not None:
                _emit(source, ContextKind.COMBAT, combat)
    if combat is not None and settings.default_music is not None:
        _emit(settings.default_music, ContextKind.COMBAT, combat)

    logger.debug(
        "Collected %d candidate context(s)",
        len(contexts),
        extra={"candidates": [context.describe() for context in contexts]},
    )
    return contexts
