"""Tests for the batch generation CLI."""

from __future__ import annotations

import argparse
import json

import pytest

from app.theory_generation.persistence import InMemoryContentStore
from app.theory_generation.scripts import run_theory_generation as cli
from tests.fakes import concepts_doc, demonstrations_doc, models_doc


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch):
    monkeypatch.setenv("THEORY_GEN_MAX_RETRIES", "")
    monkeypatch.setenv("THEORY_GEN_BACKUP_ENABLED", "")


def test_defaults():
    args = cli._parse_args([])
    assert args.dimensions is None
    assert args.levels is None
    assert args.skip_existing is True
    assert args.env == "local"
    assert args.dry_run is False
    assert args.backup is True
    assert args.max_retries is None
    assert args.replay_backup is None


def test_flags():
    args = cli._parse_args([
        "--dimensions", "causal_analysis, fallacy_detection",
        "--levels", "1,3",
        "--no-skip-existing",
        "--env", "staging",
        "--dry-run",
        "--no-backup",
        "--max-retries", "5",
        "-v",
    ])
    assert args.dimensions == ["causal_analysis", "fallacy_detection"]
    assert args.levels == [1, 3]
    assert args.skip_existing is False
    assert args.env == "staging"
    assert args.dry_run is True
    assert args.backup is False
    assert args.max_retries == 5
    assert args.verbose is True


@pytest.mark.parametrize("value", ["", "one,two", ","])
def test_parse_level_list_rejects(value):
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_level_list(value)


def test_parse_dimension_list_rejects_empty():
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_dimension_list(" , ")


def test_build_config_applies_overrides():
    config = cli._build_config(cli._parse_args(["--max-retries", "2", "--no-backup"]))
    assert config.max_retries == 2
    assert config.backup_enabled is False

    config = cli._build_config(cli._parse_args([]))
    assert config.max_retries == 3
    assert config.backup_enabled is True


def test_dry_run_uses_in_memory_store():
    store = cli._build_store(cli._parse_args(["--dry-run"]))
    assert isinstance(store, InMemoryContentStore)
    assert store.enforce_unique is True


def test_invalid_max_retries_exits_with_error(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--dry-run", "--max-retries", "0"])
    assert excinfo.value.code == 1
    assert "Configuration error" in capsys.readouterr().err


def test_replay_backup_dry_run(tmp_path, monkeypatch, capsys):
    snapshot = tmp_path / "causal_analysis-level-1.json"
    snapshot.write_text(json.dumps({
        "dimension": {"id": "causal_analysis"},
        "level": {"level": 1},
        "content": {
            "concepts": concepts_doc(),
            "models": models_doc(),
            "demonstrations": demonstrations_doc(),
        },
        "timestamp": "2024-05-01T10:20:30+00:00",
    }, ensure_ascii=False), encoding="utf-8")
    monkeypatch.setattr(
        cli.GenerationConfig, "from_env",
        classmethod(lambda cls: cls(backup_dir=tmp_path / "b", log_dir=tmp_path / "logs")),
    )

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--dry-run", "--replay-backup", str(snapshot)])

    assert excinfo.value.code == 0
    assert "Replayed causal_analysis:1" in capsys.readouterr().out
    assert list((tmp_path / "logs").glob("theory-generation-*.log"))
