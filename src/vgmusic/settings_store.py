"""JSON persistence for music arbitration settings.

The store is tolerant of invalid/missing values so that hand-edited or partially
written files degrade to safe defaults instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import suppress
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from vgmusic import MODULE_ID
from vgmusic.runtime_config import (
    DEFAULT_KIND_RANKING,
    normalize_kind_ranking,
    normalize_silent_mode,
)
from vgmusic.session import DefaultMusicConfig, SourceKind

logger = logging.getLogger(__name__)

DEFAULT_MUSIC_ID = "default-music"


class SilentMode(str, Enum):
    """Extra combat tie-break applied before priority and kind ordering."""

    NONE = "none"
    LAST_ACTOR = "lastActor"
    AREA = "area"
    GENERIC = "generic"


@dataclass(frozen=True)
class MusicSettings:
    """World-level settings read on every reconciliation pass."""

    area_suppressed: bool = False
    combat_suppressed: bool = False
    silent_mode: SilentMode = SilentMode.NONE
    default_music: DefaultMusicConfig | None = None
    kind_ranking: tuple[SourceKind, ...] = DEFAULT_KIND_RANKING
    fade_in: bool = False

    def with_changes(self, **changes: Any) -> MusicSettings:
        return replace(self, **changes)


def build_default_music(data: Any) -> DefaultMusicConfig | None:
    """Wrap a `{"music": {...}}` record as a music source document."""
    if not isinstance(data, dict):
        return None
    music = data.get("music")
    if not isinstance(music, dict) or not music:
        return None
    return DefaultMusicConfig(id=DEFAULT_MUSIC_ID, flags={MODULE_ID: {"music": music}})


def _coerce_settings(data: dict[str, Any]) -> MusicSettings:
    def _bool_or_default(value: Any, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        return default

    ranking = data.get("kind_ranking")
    return MusicSettings(
        area_suppressed=_bool_or_default(data.get("area_suppressed"), False),
        combat_suppressed=_bool_or_default(data.get("combat_suppressed"), False),
        silent_mode=SilentMode(normalize_silent_mode(data.get("silent_mode"))),
        default_music=build_default_music(data.get("default_music")),
        kind_ranking=normalize_kind_ranking(ranking)
        if isinstance(ranking, list)
        else DEFAULT_KIND_RANKING,
        fade_in=_bool_or_default(data.get("fade_in"), False),
    )


def _settings_payload(settings: MusicSettings) -> dict[str, Any]:
    default_music = None
    if settings.default_music is not None:
        default_music = {"music": settings.default_music.get_flag("music") or {}}
    return {
        "area_suppressed": settings.area_suppressed,
        "combat_suppressed": settings.combat_suppressed,
        "silent_mode": settings.silent_mode.value,
        "default_music": default_music,
        "kind_ranking": [kind.value for kind in settings.kind_ranking],
        "fade_in": settings.fade_in,
    }


def load_settings_with_notice(path: Path) -> tuple[MusicSettings, str | None]:
    """Load settings and return an optional user-facing notice."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("Settings file missing at %s; using defaults.", path)
        return MusicSettings(), None
    except OSError as exc:
        logger.warning("Failed to read settings file %s: %s; using defaults.", path, exc)
        return (
            MusicSettings(),
            "Music settings were reset to defaults.\n"
            "Likely cause: settings file is unreadable due to permissions or IO issues.\n"
            f"Next step: verify access to '{path}' and restart.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Settings file at %s is invalid JSON; using defaults.", path)
        return (
            MusicSettings(),
            "Music settings were reset to defaults.\n"
            "Likely cause: settings file is corrupt or partially written.\n"
            f"Next step: remove or repair '{path}' and restart.",
        )

    if not isinstance(data, dict):
        logger.warning("Settings file at %s is not a JSON object; using defaults.", path)
        return (
            MusicSettings(),
            "Music settings were reset to defaults.\n"
            "Likely cause: settings file format is invalid for this version.\n"
            f"Next step: remove '{path}' and restart.",
        )

    return _coerce_settings(data), None


def load_settings(path: Path) -> MusicSettings:
    """Load settings from disk, falling back to defaults."""
    settings, _notice = load_settings_with_notice(path)
    return settings


def save_settings(path: Path, settings: MusicSettings) -> None:
    """Persist settings atomically via write-then-replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps(_settings_payload(settings), indent=2, sort_keys=True)
    delay_s = 0.02
    try:
        for attempt in range(4):
            tmp_path.write_text(payload, encoding="utf-8")
            try:
                tmp_path.replace(path)
                return
            except PermissionError:
                # Windows refuses replace while another process holds the file.
                if attempt >= 3:
                    raise
                time.sleep(delay_s)
                delay_s = min(0.25, delay_s * 2.0)
    finally:
        with suppress(OSError):
            tmp_path.unlink()
