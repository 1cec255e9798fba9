"""Tests for the command line interface."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from kbeauty_pipeline.cli.main import app
from kbeauty_pipeline.db.engine import reset_engine
from kbeauty_pipeline.ingestion.registry import reset_default_registry

runner = CliRunner()

PIPELINE_YAML = """
sources:
  - name: olive_young
    adapter: olive_young
    description: "Olive Young Global catalog"
    reliability: high

  - name: amazon
    adapter: amazon
    enabled: false
    reliability: low
"""


@pytest.fixture
def pipeline_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "pipeline.yaml"
    path.write_text(PIPELINE_YAML)
    monkeypatch.setenv("PIPELINE_CONFIG_PATH", str(path))
    reset_default_registry()
    yield path
    reset_default_registry()


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", str(tmp_path / "cli.db"))
    reset_engine()
    yield
    reset_engine()


class TestVersion:
    """Tests for the version command."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "K-Beauty Pipeline v0.1.0" in result.output


class TestSourcesCommands:
    """Tests for the sources sub-commands."""

    def test_list_enabled(self, pipeline_config: Path) -> None:
        result = runner.invoke(app, ["sources", "list"])

        assert result.exit_code == 0
        assert "olive_young" in result.output
        assert "amazon" not in result.output

    def test_list_all(self, pipeline_config: Path) -> None:
        result = runner.invoke(app, ["sources", "list", "--all"])

        assert result.exit_code == 0
        assert "amazon" in result.output

    def test_show_catalog_source(self, pipeline_config: Path) -> None:
        result = runner.invoke(app, ["sources", "show", "olive_young"])

        assert result.exit_code == 0
        assert "Source: olive_young" in result.output
        assert "Catalog Categories" in result.output

    def test_show_missing_source(self, pipeline_config: Path) -> None:
        result = runner.invoke(app, ["sources", "show", "missing"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_adapters(self) -> None:
        result = runner.invoke(app, ["sources", "adapters"])

        assert result.exit_code == 0
        assert "olive_young" in result.output
        assert "stylekorean" in result.output


class TestRunsCommand:
    """Tests for the runs command."""

    def test_unknown_run_type(self) -> None:
        result = runner.invoke(app, ["runs", "--type", "bogus"])

        assert result.exit_code == 1
        assert "Unknown run type" in result.output

    def test_no_runs(self, database) -> None:
        assert runner.invoke(app, ["init-db"]).exit_code == 0

        result = runner.invoke(app, ["runs"])

        assert result.exit_code == 0
        assert "No pipeline runs recorded" in result.output
