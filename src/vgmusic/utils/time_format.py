"""Offset formatting for CLI output."""

from __future__ import annotations

import math


def format_offset(seconds: float | None) -> str:
    """Format a resume offset in seconds as MM:SS.s or H:MM:SS.s."""
    total = _coerce_seconds(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours >= 1:
        return f"{int(hours)}:{int(minutes):02d}:{secs:04.1f}"
    return f"{int(minutes):02d}:{secs:04.1f}"


def _coerce_seconds(value: float | None) -> float:
    try:
        numeric = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(numeric):
        return 0.0
    return max(0.0, numeric)
