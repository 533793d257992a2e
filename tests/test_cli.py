"""Tests for the command-line interface."""

import tempfile
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from curiosity.cli import cli


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("CURIOSITY_DB_PATH", raising=False)
    monkeypatch.delenv("CURIOSITY_STORAGE_BACKEND", raising=False)


def _invoke(config, *args):
    result = CliRunner().invoke(cli, ["-c", str(config), *args])
    assert result.exit_code == 0, result.output
    return result.output


def test_init_writes_config_and_seeds_tags():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = CliRunner().invoke(cli, ["init", "--path", tmpdir])
        assert result.exit_code == 0, result.output
        assert "Seeded" in result.output

        config = Path(tmpdir) / "config.yaml"
        cfg = yaml.safe_load(config.read_text())
        assert cfg["db_path"].endswith("curiosity_engine.db")
        assert cfg["clustering"]["prune_stale"] is False

        output = _invoke(config, "tags", "seed")
        assert "already initialized" in output


def test_process_cluster_and_inspect():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Path(tmpdir) / "config.yaml"
        config.write_text(f"db_path: {tmpdir}/engine.db\n")

        output = _invoke(config, "process", "--cluster", "s1", "Fotosintesis", "Klorofil", "Karbon")
        assert "Processed 3 concept(s)" in output
        assert "Found 1 cluster(s)" in output

        output = _invoke(config, "clusters")
        assert "Fotosintesis" in output

        output = _invoke(config, "graph")
        assert "Concepts: 3" in output
        assert "Links: 3" in output

        output = _invoke(config, "rebalance")
        assert "balanced" in output

        output = _invoke(config, "analyze", "missing")
        assert "Cluster not found" in output

        output = _invoke(config, "janitor")
        assert "Dangling links removed: 0" in output

        output = _invoke(config, "reset", "--yes")
        assert "Graph reset" in output
        output = _invoke(config, "graph")
        assert "Concepts: 0" in output


def test_process_without_concepts_changes_nothing():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Path(tmpdir) / "config.yaml"
        config.write_text(f"db_path: {tmpdir}/engine.db\n")

        output = _invoke(config, "process", "s1")
        assert "graph unchanged" in output


def test_daily_tags_flow():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Path(tmpdir) / "config.yaml"
        config.write_text(f"db_path: {tmpdir}/engine.db\n")

        output = _invoke(config, "tags", "daily")
        assert "No tags available" in output

        _invoke(config, "tags", "seed")
        output = _invoke(config, "tags", "daily", "-n", "3")
        assert "Tags for" in output
        assert output.count("•") == 3

        output = _invoke(config, "tags", "edit", "no-such-tag")
        assert "Tag not found" in output

        output = _invoke(config, "stats")
        assert "tag_history: 3" in output
        assert "yes" in output

        output = _invoke(config, "tags", "reset-usage", "--yes")
        assert "Tag usage reset" in output


def test_process_records_spark_with_tags():
    from curiosity.config import load_default_tags

    tag_name = load_default_tags()[0]["name"]
    with tempfile.TemporaryDirectory() as tmpdir:
        config = Path(tmpdir) / "config.yaml"
        config.write_text(f"db_path: {tmpdir}/engine.db\n")
        _invoke(config, "tags", "seed")

        output = _invoke(config, "process", "--mode", "2", "--tag", tag_name, "s1", "Tides", "Moon")
        assert "Recorded spark s1 with 1 tag(s)" in output
        assert "Processed 2 concept(s)" in output

        output = _invoke(config, "stats")
        assert "sparks: 1" in output

        output = _invoke(config, "process", "--tag", "no-such-tag", "s2", "Orbit")
        assert "Tag not found" in output
        assert "Processed" not in output
