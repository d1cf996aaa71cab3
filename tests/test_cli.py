"""End-to-end tests for the command-line entrypoint."""

from __future__ import annotations

import json
import sys

import pytest

import vgmusic.cli as cli_module

SESSION = {
    "user_id": "gm-a",
    "users": [
        {"id": "gm-a", "gm": True, "active": True},
        {"id": "gm-b", "gm": True, "active": True},
    ],
    "playlists": [
        {"id": "calm", "tracks": [{"id": "t1", "name": "Tavern"}]},
        {"id": "fight", "tracks": [{"id": "f1", "name": "Duel", "duration": 60}]},
    ],
    "scenes": [
        {
            "id": "s1",
            "active": True,
            "flags": {
                "music": {"area": {"playlist": "calm"}},
                "playlist": {"calm": {"t1": {"id": "calm", "trackId": "t1", "start": 75}}},
            },
        }
    ],
    "actors": [{"id": "hero", "flags": {"music": {"combat": {"playlist": "fight"}}}}],
    "combats": [],
}


@pytest.fixture
def run_cli(monkeypatch, tmp_path):
    monkeypatch.setattr(cli_module, "setup_logging", lambda **_kwargs: None)
    monkeypatch.setattr(cli_module, "log_dir", lambda: tmp_path / "logs")

    def _run(session: object, *extra: str) -> int:
        path = tmp_path / "session.json"
        if isinstance(session, str):
            path.write_text(session, encoding="utf-8")
        else:
            path.write_text(json.dumps(session), encoding="utf-8")
        argv = ["vgmusic", "--session", str(path)]
        argv += ["--settings", str(tmp_path / "settings.json"), *extra]
        monkeypatch.setattr(sys, "argv", argv)
        return cli_module.main()

    return _run


def test_cli_plays_area_music_from_saved_offset(run_cli, capsys) -> None:
    rc = run_cli(SESSION)

    out = capsys.readouterr().out
    assert rc == 0
    assert "Winner: area via Scene:s1 playlist=calm priority=0" in out
    assert "Tavern [calm/t1] at 01:15.0" in out
    assert "calm/t1 {'playing': True, 'paused_time': 75.0}" in out


def test_cli_explain_lists_ranked_candidates(run_cli, capsys) -> None:
    session = json.loads(json.dumps(SESSION))
    session["combats"] = [
        {
            "id": "c1",
            "scene": "s1",
            "started": True,
            "active": True,
            "turn": 0,
            "turns": [{"actor": "hero"}],
        }
    ]

    rc = run_cli(session, "--explain")

    out = capsys.readouterr().out
    assert rc == 0
    assert " 1. combat via Actor:hero playlist=fight" in out
    assert " 2. area via Scene:s1 playlist=calm" in out
    assert "Winner: combat via Actor:hero" in out


def test_cli_non_leader_does_nothing(run_cli, capsys) -> None:
    session = dict(SESSION, user_id="gm-b")

    rc = run_cli(session)

    out = capsys.readouterr().out
    assert rc == 0
    assert "not the leader" in out
    assert "Winner" not in out


def test_cli_reports_silence(run_cli, capsys) -> None:
    session = dict(SESSION, scenes=[])

    rc = run_cli(session)

    assert rc == 0
    assert "Winner: <silence>" in capsys.readouterr().out


def test_cli_invalid_session_exits_with_usage_error(run_cli, capsys) -> None:
    rc = run_cli("{broken")

    assert rc == 2
    assert "Invalid session snapshot" in capsys.readouterr().err


def test_cli_reports_settings_notice(run_cli, tmp_path, capsys) -> None:
    (tmp_path / "settings.json").write_text("{oops", encoding="utf-8")

    rc = run_cli(SESSION)

    assert rc == 0
    assert "Music settings were reset to defaults." in capsys.readouterr().err
