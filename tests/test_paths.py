"""Tests for platform-specific paths."""

from __future__ import annotations

from pathlib import Path

import vgmusic.paths as paths


class FakeAppDirs:
    """Minimal AppDirs stand-in used to control path roots during tests."""

    def __init__(self, config_dir: Path, log_dir: Path) -> None:
        self.user_config_dir = str(config_dir)
        self.user_log_dir = str(log_dir)


def test_paths_use_platformdirs_and_create_dirs(tmp_path, monkeypatch) -> None:
    config_dir = tmp_path / "config"
    logs = tmp_path / "state" / "logs"
    seen: list[str] = []

    def fake_app_dirs(app_name: str, appauthor: bool | None = None) -> FakeAppDirs:
        assert appauthor is False
        seen.append(app_name)
        return FakeAppDirs(config_dir, logs)

    monkeypatch.setattr(paths, "AppDirs", fake_app_dirs)
    paths.get_app_dirs.cache_clear()
    try:
        assert paths.config_dir() == config_dir
        assert paths.log_dir() == logs
        assert paths.settings_path() == config_dir / "settings.json"
    finally:
        paths.get_app_dirs.cache_clear()

    assert config_dir.exists()
    assert logs.exists()
    assert seen == ["vgmusic"]
