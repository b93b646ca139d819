"""
Tests for the run.py command line entry point (inference disabled).
"""
import json

import run


def test_resolves_command_without_model(tmp_path, capsys):
    code = run.main(["--backend", "off", "--models-dir", str(tmp_path), "--log-level", "ERROR", "show progress"])

    assert code == 0
    out = json.loads(capsys.readouterr().out.strip())
    assert out == {"action": "show_progress", "message": "Here's your progress summary!", "data": {}}


def test_unresolvable_message_exit_code(tmp_path, capsys):
    code = run.main(["--backend", "off", "--models-dir", str(tmp_path), "--log-level", "ERROR", "good morning"])

    assert code == 2
    assert capsys.readouterr().out == ""


def test_invalid_context_file(tmp_path):
    bad = tmp_path / "goals.json"
    bad.write_text('{"not": "a list"}', encoding="utf-8")

    code = run.main(["--backend", "off", "--goals-json", str(bad), "--log-level", "ERROR", "show progress"])

    assert code == 1


def test_list_models(tmp_path, capsys):
    code = run.main(["--models-dir", str(tmp_path), "--log-level", "ERROR", "--list-models"])

    assert code == 0
    assert "tinyllama-1.1b-q4" in capsys.readouterr().out
