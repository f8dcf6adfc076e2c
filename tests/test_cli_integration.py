"""Integration tests for CLI commands against a local filesystem store."""

import json

import pytest
from typer.testing import CliRunner

from blobflow.cli import app


@pytest.fixture
def runner():
    """Create a CliRunner for in-process testing."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ["BLOBFLOW_MAX_ITEMS", "BLOBFLOW_MAX_RETRIES", "BLOBFLOW_OWNER_ID", "BLOBFLOW_STORE"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def sample_files(tmp_path):
    files = []
    for name, content in [("a.txt", "alpha"), ("b.txt", "beta")]:
        path = tmp_path / name
        path.write_text(content)
        files.append(path)
    return files


class TestUpload:
    """Test the upload command."""

    def test_upload_registers_files(self, runner, tmp_path, sample_files):
        store = tmp_path / "store"
        result = runner.invoke(app, [
            "upload", *map(str, sample_files), "--root", str(tmp_path), "--store", str(store),
        ])

        assert result.exit_code == 0, result.output
        assert "All blobs settled" in result.output
        index = json.loads((store / "index.json").read_text())
        assert len(index["blobs"]) == 2
        assert index["attachments"] == {}

    def test_upload_and_link(self, runner, tmp_path, sample_files):
        store = tmp_path / "store"
        result = runner.invoke(app, [
            "upload", str(sample_files[0]), "--root", str(tmp_path), "--store", str(store),
            "--link", "--owner-id", "42",
        ])

        assert result.exit_code == 0, result.output
        index = json.loads((store / "index.json").read_text())
        assert [a["owner_id"] for a in index["attachments"].values()] == [42]

    def test_duplicate_files_are_skipped(self, runner, tmp_path, sample_files):
        result = runner.invoke(app, [
            "upload", str(sample_files[0]), str(sample_files[0]), "--root", str(tmp_path),
        ])

        assert result.exit_code == 0, result.output
        assert "Skipped 1" in result.output
        assert (tmp_path / ".blobflow" / "store" / "index.json").exists()

    def test_missing_file_fails(self, runner, tmp_path):
        result = runner.invoke(app, ["upload", str(tmp_path / "nope.txt"), "--root", str(tmp_path)])
        assert result.exit_code == 1
        assert "Not a file" in result.output

    def test_invalid_retry_budget_fails(self, runner, tmp_path, sample_files):
        result = runner.invoke(app, [
            "upload", str(sample_files[0]), "--root", str(tmp_path), "--max-retries", "0",
        ])
        assert result.exit_code == 1


class TestShowConfig:
    """Test the config command."""

    def test_shows_file_values(self, runner, tmp_path):
        config_dir = tmp_path / ".blobflow"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("max_items: 4\n")

        result = runner.invoke(app, ["config", "--root", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "max_items: 4" in result.output

    def test_invalid_config_fails(self, runner, tmp_path):
        config_dir = tmp_path / ".blobflow"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("max_items: nope\n")

        result = runner.invoke(app, ["config", "--root", str(tmp_path)])

        assert result.exit_code == 1
