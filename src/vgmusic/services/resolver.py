"""Context filtering and priority resolution.

`ContextRanker.compare` is a total-order comparator evaluated as an ordered
sequence of tie-breaks; the first decisive rule wins. Sorting uses Python's
stable `sorted`, so contexts the comparator considers equal keep collection
order and the winner is reproducible for identical session state.
"""

from __future__ import annotations

import logging
from functools import cmp_to_key

from vgmusic.services.collector import collect_contexts
from vgmusic.services.context import ContextKind, PlaylistContext
from vgmusic.session import Combat, Document, Session, SourceKind
from vgmusic.settings_store import MusicSettings, SilentMode

logger = logging.getLogger(__name__)


def is_context_allowed(
    context: PlaylistContext, combat: Combat | None, settings: MusicSettings
) -> bool:
    """Return whether a candidate survives suppression and combat-state checks."""
    if context.kind is ContextKind.COMBAT:
        if combat is None or not combat.started:
            return False
        if settings.combat_suppressed:
            return False
    if context.kind is ContextKind.AREA and settings.area_suppressed:
        return False
    return True


class ContextRanker:
    """Orders candidate contexts for one reconciliation pass."""

    def __init__(self, combat: Combat | None, settings: MusicSettings) -> None:
        self._combat = combat
        self._settings = settings
        combatant = combat.current_combatant if combat is not None else None
        actor = combatant.actor if combatant is not None else None
        self._current_sources: tuple[Document, ...] = tuple(
            document
            for document in (
                combatant.token if combatant is not None else None,
                actor,
                actor.prototype_token if actor is not None else None,
            )
            if document is not None
        )

    def compare(self, a: PlaylistContext, b: PlaylistContext) -> int:
        for rule in (
            self._by_current_turn,
            self._by_silent_mode,
            self._by_priority,
            self._by_source_kind,
        ):
            result = rule(a, b)
            if result:
                return result
        return 0

    def rank(self, contexts: list[PlaylistContext]) -> list[PlaylistContext]:
        return sorted(contexts, key=cmp_to_key(self.compare))

    def _is_current(self, context: PlaylistContext) -> bool:
        return any(context.source is source for source in self._current_sources)

    def _by_current_turn(self, a: PlaylistContext, b: PlaylistContext) -> int:
        return _prefer(self._is_current(a), self._is_current(b))

    def _by_silent_mode(self, a: PlaylistContext, b: PlaylistContext) -> int:
        mode = self._settings.silent_mode
        if mode is SilentMode.LAST_ACTOR:
            return self._by_last_actor(a, b)
        if mode is SilentMode.AREA:
            kind = ContextKind.AREA
        elif mode is SilentMode.GENERIC:
            kind = ContextKind.COMBAT
        else:
            return 0
        return _prefer(_is_generic(a, kind), _is_generic(b, kind))

    def _by_last_actor(self, a: PlaylistContext, b: PlaylistContext) -> int:
        """Prefer whichever context belongs to the nearest earlier actor in turn order."""
        combat = self._combat
        if combat is None or not combat.turns:
            return 0
        start = combat.turn or 0
        if start < 0:
            return 0
        count = len(combat.turns)
        for step in range(1, max(count, 2)):
            combatant = combat.turns[(start - step) % count]
            actor = combatant.actor
            if actor is None:
                continue
            prototype = actor.prototype_token
            result = _prefer(
                a.source is actor or a.source is prototype,
                b.source is actor or b.source is prototype,
            )
            if result:
                return result
            if a.source is actor or a.source is prototype:
                # Both belong to the same actor; nothing further back can decide.
                return 0
        return 0

    def _by_priority(self, a: PlaylistContext, b: PlaylistContext) -> int:
        return b.priority - a.priority

    def _by_source_kind(self, a: PlaylistContext, b: PlaylistContext) -> int:
        kind_a, kind_b = a.source_kind, b.source_kind
        if kind_a is kind_b:
            return 0
        return self._kind_rank(kind_a) - self._kind_rank(kind_b)

    def _kind_rank(self, kind: SourceKind | None) -> int:
        ranking = self._settings.kind_ranking
        if kind is None or kind not in ranking:
            return len(ranking)
        return ranking.index(kind)


def _prefer(a_matches: bool, b_matches: bool) -> int:
    if a_matches and not b_matches:
        return -1
    if b_matches and not a_matches:
        return 1
    return 0


def _is_generic(context: PlaylistContext, kind: ContextKind) -> bool:
    return context.kind is kind and context.source_kind is not SourceKind.ACTOR


def rank_contexts(session: Session, settings: MusicSettings) -> list[PlaylistContext]:
    """Return every surviving candidate, best first."""
    combat = session.current_combat
    candidates = [
        context
        for context in collect_contexts(session, settings)
        if is_context_allowed(context, combat, settings)
    ]
    ranked = ContextRanker(combat, settings).rank(candidates)
    logger.debug(
        "Ranked %d candidate context(s)",
        len(ranked),
        extra={"ranking": [context.describe() for context in ranked]},
    )
    return ranked


def resolve_context(
    session: Session, settings: MusicSettings
) -> PlaylistContext | None:
    """Return the winning context, or `None` for silence."""
    ranked = rank_contexts(session, settings)
    return ranked[0] if ranked else None
