"""Tests for the humboi CLI."""

import pytest
import yaml
from click.testing import CliRunner

from humboi.cli import main
from humboi.connection import get_client


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "humboi-home"
    monkeypatch.setenv("HUMBOI_HOME", str(home))
    return home


@pytest.fixture
def memory_home(home):
    home.mkdir()
    (home / "config.yaml").write_text(yaml.safe_dump({"backend": "memory"}))
    return home


class TestInit:
    """Tests for `humboi init`."""

    def test_writes_config(self, runner, home):
        result = runner.invoke(main, ["init"])

        assert result.exit_code == 0
        assert "Initialized humboi config" in result.output
        config = yaml.safe_load((home / "config.yaml").read_text())
        assert config["backend"] == "sqlite"
        assert config["database_name"] == "datomic-docs-tutorial"
        assert (home / ".env").exists()

    def test_refuses_overwrite(self, runner, home):
        runner.invoke(main, ["init"])

        result = runner.invoke(main, ["init"])

        assert result.exit_code == 1
        assert "Use --force" in result.output

    def test_force_overwrites(self, runner, home):
        runner.invoke(main, ["init"])
        (home / "config.yaml").write_text("backend: memory\n")

        result = runner.invoke(main, ["init", "--force"])

        assert result.exit_code == 0
        assert yaml.safe_load((home / "config.yaml").read_text())["backend"] == "sqlite"


class TestBootstrap:
    """Tests for `humboi bootstrap`."""

    def test_initializes_then_reports_initialized(self, runner, memory_home):
        first = runner.invoke(main, ["bootstrap"])
        second = runner.invoke(main, ["bootstrap"])

        assert first.exit_code == 0
        assert "✓ datomic-docs-tutorial: initialized" in first.output
        assert second.exit_code == 0
        assert "✓ datomic-docs-tutorial: already-initialized" in second.output

    def test_configured_database_name(self, runner, home):
        home.mkdir()
        (home / "config.yaml").write_text(
            yaml.safe_dump({"backend": "memory", "database_name": "inventory"})
        )

        result = runner.invoke(main, ["bootstrap"])

        assert result.exit_code == 0
        assert "✓ inventory: initialized" in result.output
        assert get_client().connect("inventory").db().has_ident("inv/sku")

    def test_configured_name_replaces_sample_name(self, runner, home):
        home.mkdir()
        (home / "config.yaml").write_text(
            yaml.safe_dump({"backend": "memory", "database_name": "inventory"})
        )

        result = runner.invoke(main, ["bootstrap", "--dataset", "datomic-docs-tutorial"])

        assert result.exit_code == 1
        assert "Could not resolve setup for datomic-docs-tutorial" in result.output

    def test_unknown_dataset(self, runner, memory_home):
        result = runner.invoke(main, ["bootstrap", "--dataset", "nope"])

        assert result.exit_code == 1
        assert "✗ nope bootstrap failed: Could not resolve setup for nope" in result.output

    def test_missing_config(self, runner, home):
        result = runner.invoke(main, ["bootstrap"])

        assert result.exit_code == 1
        assert "Config not loaded" in result.output
        assert "config.yaml not found" in result.output

    def test_sqlite_backend(self, runner, home, tmp_path):
        home.mkdir()
        data_dir = tmp_path / "data"
        (home / "config.yaml").write_text(
            yaml.safe_dump({"backend": "sqlite", "sqlite_path": str(data_dir)})
        )

        result = runner.invoke(main, ["bootstrap"])

        assert result.exit_code == 0
        assert (data_dir / "datomic-docs-tutorial.db").exists()


class TestQueries:
    """Tests for `humboi schema`, `items` and `demo`."""

    def test_schema(self, runner, memory_home):
        runner.invoke(main, ["bootstrap"])

        result = runner.invoke(main, ["schema"])

        assert result.exit_code == 0
        assert "inv/sku" in result.output
        assert "order/items" in result.output

    def test_items(self, runner, memory_home):
        runner.invoke(main, ["bootstrap"])

        result = runner.invoke(main, ["items", "--type", "hat", "--pull", "inv/sku"])

        assert result.exit_code == 0
        assert "SKU-3" in result.output
        assert "inv/color" not in result.output

    def test_demo(self, runner, memory_home):
        result = runner.invoke(main, ["demo"])

        assert result.exit_code == 0
        assert "inv/type" in result.output
        assert "shirt" in result.output

    def test_bad_backend_reported(self, runner, home):
        home.mkdir()
        (home / "config.yaml").write_text(yaml.safe_dump({"backend": "postgres"}))

        result = runner.invoke(main, ["schema"])

        assert result.exit_code == 1
        assert "Unknown backend: postgres" in result.output


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output
