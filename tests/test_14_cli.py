"""CLI tests: commands run against a tmp_path settings file."""

import json

import pytest
import yaml

from affirm_ms import cli
from affirm_ms.api.dependencies import get_settings


@pytest.fixture
def cli_settings(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump({
        "database": {"url": f"sqlite:///{tmp_path / 'cli.db'}"},
        "storage": {"base_dir": str(tmp_path / "storage")},
        "synthesis": {"provider": "silence"},
        "logging": {"level": 1},
    }), encoding="utf-8")
    monkeypatch.setenv("AFFIRM_MS_SETTINGS", str(path))
    get_settings.cache_clear()
    yield path
    get_settings.cache_clear()


def _run(capsys, *argv):
    code = cli.main(list(argv))
    out = capsys.readouterr().out
    # Console log lines may surround the JSON payload
    lines = out.splitlines()
    start = lines.index("{")
    payload, _ = json.JSONDecoder().raw_decode("\n".join(lines[start:]))
    return code, payload


def test_select_fallback(cli_settings, capsys):
    code, payload = _run(capsys, "select", "--goal", "calm", "--count", "3")
    assert code == 0
    assert payload["tier"] == "fallback"
    assert len(payload["lines"]) == 3


def test_seed_then_exact_selection(cli_settings, capsys):
    code, payload = _run(capsys, "seed")
    assert code == 0
    assert payload == {"ok": True, "lines": 40, "templates": 4}

    code, payload = _run(
        capsys,
        "select", "--goal", "sleep",
        "--intention", "I want to release the day and welcome deep, restorative rest",
        "--count", "6",
    )
    assert code == 0
    assert payload["tier"] == "exact"


def test_session_and_playlist(cli_settings, capsys):
    code, session = _run(capsys, "session", "--goal", "focus", "--count", "2", "--silence-ms", "1000")
    assert code == 0
    assert len(session["lines"]) == 2

    code, manifest = _run(capsys, "playlist", session["session_id"])
    assert code == 0
    assert manifest["sessionId"] == session["session_id"]
    assert manifest["silenceBetweenMs"] == 1000
    assert len(manifest["affirmations"]) == 2


def test_invalid_goal_exit_code(cli_settings, capsys):
    code, payload = _run(capsys, "select", "--goal", "party")
    assert code == 1
    assert payload["error"] == "INVALID_INPUT"


def test_command_required():
    with pytest.raises(SystemExit):
        cli.main([])
