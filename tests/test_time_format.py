"""Tests for offset formatting helpers."""

from __future__ import annotations

from vgmusic.utils.time_format import format_offset


def test_format_offset_under_hour() -> None:
    assert format_offset(0) == "00:00.0"
    assert format_offset(42.5) == "00:42.5"
    assert format_offset(61.5) == "01:01.5"


def test_format_offset_at_hour_and_beyond() -> None:
    assert format_offset(3600) == "1:00:00.0"
    assert format_offset(3725.5) == "1:02:05.5"


def test_format_offset_invalid_values_fall_back_to_zero() -> None:
    assert format_offset(None) == "00:00.0"
    assert format_offset(-5) == "00:00.0"
    assert format_offset(float("nan")) == "00:00.0"
    assert format_offset(float("inf")) == "00:00.0"
    assert format_offset("soon") == "00:00.0"  # type: ignore[arg-type]
