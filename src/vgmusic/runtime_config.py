"""Runtime configuration normalization helpers.

These keep CLI flag and persisted setting interpretation deterministic across
entrypoints.
"""

from __future__ import annotations

from collections.abc import Iterable

from vgmusic.session import SourceKind

SILENT_MODES = ("none", "lastActor", "area", "generic")
DEFAULT_KIND_RANKING: tuple[SourceKind, ...] = (
    SourceKind.TOKEN,
    SourceKind.PROTOTYPE_TOKEN,
    SourceKind.ACTOR,
    SourceKind.SCENE,
    SourceKind.DEFAULT_MUSIC,
)


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def normalize_silent_mode(value: object) -> str:
    """Map a persisted silent-mode value onto a supported mode name."""
    if not isinstance(value, str):
        return "none"
    folded = value.strip().lower().replace("_", "").replace("-", "")
    for mode in SILENT_MODES:
        if mode.lower() == folded:
            return mode
    return "none"


def normalize_kind_ranking(values: Iterable[object]) -> tuple[SourceKind, ...]:
    """Parse a ranking list, dropping unknown names and duplicates.

    An empty result falls back to the default ranking.
    """
    by_name = {kind.value.lower(): kind for kind in SourceKind}
    ranking: list[SourceKind] = []
    for value in values:
        if isinstance(value, SourceKind):
            kind: SourceKind | None = value
        elif isinstance(value, str):
            kind = by_name.get(value.strip().lower())
        else:
            kind = None
        if kind is not None and kind not in ranking:
            ranking.append(kind)
    return tuple(ranking) or DEFAULT_KIND_RANKING
