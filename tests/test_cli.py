"""Integration-style tests for the command line wiring."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from matchcast import cli

REPO_CONFIG = str(Path(__file__).resolve().parents[1] / "config" / "engine.yaml")


def test_registered_commands() -> None:
    names = {command.name for command in cli.APP.commands}
    assert names == {"analyze", "profile", "validate-config"}
    parser = cli.APP.build_parser()
    args = parser.parse_args(["analyze", "Lions", "Tigers", "--weather", "Rain", "--json"])
    assert args.requires_engine is True
    assert args.weather == "Rain"


def test_validate_config_reports_success(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["validate-config", "--config", REPO_CONFIG])
    assert "Configuration 'default' is valid." in capsys.readouterr().out


def test_validate_config_rejects_bad_weights(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    bad = tmp_path / "engine.yaml"
    bad.write_text("ensemble:\n  poisson_weight: 0.9\n")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["validate-config", "--config", str(bad)])
    assert excinfo.value.code == 1
    assert "ensemble weights must sum to 1" in capsys.readouterr().out


def test_analyze_emits_json(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(
        [
            "analyze",
            "Lions",
            "Tigers",
            "--config",
            REPO_CONFIG,
            "--environment",
            "test",
            "--weather",
            "Extreme",
            "--importance",
            "0.9",
            "--seed",
            "11",
            "--json",
        ]
    )
    payload = json.loads(capsys.readouterr().out)
    assert payload["home_team"] == "Lions"
    assert payload["context"]["weather"] == "Extreme"
    assert payload["context"]["importance"] == pytest.approx(0.9)
    total = payload["win_prob"] + payload["draw_prob"] + payload["loss_prob"]
    assert total == pytest.approx(100.0, abs=0.01)


def test_analyze_text_output(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(
        ["analyze", "Lions", "Tigers", "--config", REPO_CONFIG, "--environment", "test", "--seed", "2"]
    )
    out = capsys.readouterr().out
    assert out.startswith("Lions vs Tigers")
    assert "Top scores:" in out


def test_profile_command(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["profile", "Lions", "--config", REPO_CONFIG, "--environment", "test", "--seed", "99"])
    out = capsys.readouterr().out
    assert out.startswith("Lions (seed 99)")
    assert "Genetic best fitness" in out
