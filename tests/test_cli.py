# tests/test_cli.py
import json

import pytest

from trick_tally.catalog import GamePhase
from trick_tally.cli import main
from trick_tally.config import load_settings
from trick_tally.errors import ValidationError
from trick_tally.persistence import JsonFileStore


@pytest.fixture
def run(tmp_path, monkeypatch):
    """Run CLI commands against a game file in tmp_path; returns (code, output)."""
    monkeypatch.setenv("TRICK_TALLY_EXPORT_DIR", str(tmp_path))
    monkeypatch.delenv("TRICK_TALLY_STATE_PATH", raising=False)
    monkeypatch.delenv("TRICK_TALLY_ROUNDS", raising=False)
    state_path = tmp_path / "game.json"

    def _run(*argv):
        lines = []
        code = main(["--state", str(state_path), *argv], out=lines.append)
        return code, "\n".join(lines)

    _run.state_path = state_path
    return _run


def _load(run):
    return JsonFileStore(run.state_path).load_game_state()


def test_cli_plays_a_round(run):
    assert run("new", "--rounds", "2")[0] == 0
    assert run("add-player", "Anne")[0] == 0
    assert run("add-player", "Bonny")[0] == 0
    assert run("start")[0] == 0
    assert run("set", "anne", "--bid", "1")[0] == 0
    assert run("submit-bids")[0] == 0
    assert run("set", "Anne", "--tricks", "1", "--bonus", "pirates_captured=1")[0] == 0
    code, output = run("finalize")
    assert code == 0
    assert "+50" in output

    state = _load(run)
    assert state.phase == GamePhase.REVIEW
    assert state.rounds[0].completed

    code, output = run("ranking")
    assert code == 0
    lines = output.splitlines()
    assert "Anne" in lines[0] and "50" in lines[0]
    assert "Bonny" in lines[1]


def test_cli_reports_core_errors(run):
    run("new")
    run("add-player", "Anne")
    code, output = run("start")
    assert code == 1
    assert "error:" in output
    assert _load(run).phase == GamePhase.SETUP

    code, output = run("add-player", "ANNE")
    assert code == 1


def test_cli_simple_rules_with_chips(run):
    run("new", "--rules", "simple", "--rounds", "1", "--menu", "5", "-5")
    run("add-player", "A")
    run("add-player", "B")
    run("start")
    assert _load(run).phase == GamePhase.SCORING
    run("set", "A", "--score", "3", "--chip", "5")
    run("set", "A", "--chip", "5")
    state = _load(run)
    assert state.rounds[0].player_data[state.players[0].id].bonus_malus_chips == [5, 5]
    run("finalize")
    run("next")
    assert _load(run).phase == GamePhase.FINISHED


def test_cli_skip_end_and_export(run, tmp_path):
    run("new", "--rounds", "5")
    run("add-player", "Anne")
    run("add-player", "Bonny")
    run("start")
    assert run("skip", "3")[0] == 0
    assert _load(run).current_round_number == 3
    run("submit-bids")
    run("finalize")
    assert run("end")[0] == 0
    assert _load(run).phase == GamePhase.FINISHED

    code, output = run("export", "sheet.csv")
    assert code == 0
    lines = (tmp_path / "sheet.csv").read_text(encoding="utf-8").strip().splitlines()
    # header + one completed round for two players
    assert len(lines) == 3

    code, output = run("stats")
    assert code == 0
    assert "Bid accuracy" in output


def test_cli_new_from_definition_file(run, tmp_path):
    definition = tmp_path / "papayoo.json"
    definition.write_text(
        json.dumps({"slug": "papayoo", "name": "Papayoo", "scoring_type": "simple", "default_rounds": 3}),
        encoding="utf-8",
    )
    assert run("new", "--definition", str(definition))[0] == 0
    state = _load(run)
    assert state.rule_set.slug == "papayoo"
    assert state.rule_set.rounds_total == 3

    code, _ = run("new", "--definition", str(tmp_path / "missing.json"))
    assert code == 1


def test_cli_definition_uses_rounds_from_env(run, tmp_path, monkeypatch):
    definition = tmp_path / "papayoo.json"
    definition.write_text(
        json.dumps({"slug": "papayoo", "name": "Papayoo", "scoring_type": "simple", "default_rounds": 3}),
        encoding="utf-8",
    )
    monkeypatch.setenv("TRICK_TALLY_ROUNDS", "6")
    assert run("new", "--definition", str(definition))[0] == 0
    assert _load(run).rule_set.rounds_total == 6

    assert run("new", "--definition", str(definition), "--rounds", "4")[0] == 0
    assert _load(run).rule_set.rounds_total == 4


def test_cli_reports_unreadable_state_file(tmp_path, monkeypatch):
    monkeypatch.setenv("TRICK_TALLY_EXPORT_DIR", str(tmp_path))
    state_dir = tmp_path / "not_a_file"
    state_dir.mkdir()
    lines = []
    code = main(["--state", str(state_dir), "status"], out=lines.append)
    assert code == 1
    assert lines[-1].startswith("error:")


def test_cli_set_rejects_bad_bonus(run):
    run("new")
    run("add-player", "Anne")
    run("add-player", "Bonny")
    run("start")
    assert run("set", "Anne", "--bonus", "kraken=1")[0] == 1
    assert run("set", "Anne", "--bonus", "jolly_roger_14=maybe")[0] == 1
    assert run("set", "Anne")[0] == 1
    assert run("set", "Nobody", "--bid", "0")[0] == 1


def test_load_settings_from_env(tmp_path):
    settings = load_settings(
        {
            "TRICK_TALLY_EXPORT_DIR": str(tmp_path),
            "TRICK_TALLY_ROUNDS": "7",
            "TRICK_TALLY_LOOT_ENABLED": "yes",
            "TRICK_TALLY_LOOT_VALUES": "10, -20",
            "TRICK_TALLY_LOG_LEVEL": "debug",
        }
    )
    assert settings.export_dir == tmp_path
    assert settings.state_path == tmp_path / "current_game.json"
    assert settings.rounds == 7
    assert settings.loot_enabled
    assert settings.loot_values == (10, -20)
    assert settings.log_level == "DEBUG"


def test_load_settings_defaults_and_errors():
    settings = load_settings({})
    assert settings.rounds is None
    assert settings.preset_rounds == 10
    assert settings.loot_values == (20, 30, -10)
    assert not settings.loot_enabled
    with pytest.raises(ValidationError):
        load_settings({"TRICK_TALLY_ROUNDS": "zero"})
    with pytest.raises(ValidationError):
        load_settings({"TRICK_TALLY_ROUNDS": "0"})
    with pytest.raises(ValidationError):
        load_settings({"TRICK_TALLY_LOOT_VALUES": "a,b"})
