"""Tests for the ``artifact-store storage`` command group."""

import textwrap

import pytest
import typer
from typer.testing import CliRunner

from src.cli import app
from src.cli.shared.console import CLIConsole

runner = CliRunner()


@pytest.fixture
def write_config(tmp_path):
    def _write(storage_body: str):
        path = tmp_path / "config.yaml"
        path.write_text(
            "config:\n  storage:\n" + textwrap.indent(textwrap.dedent(storage_body), "    ")
        )
        return path

    return _write


def test_check_memory_backend(write_config):
    path = write_config("backend: memory\n")

    result = runner.invoke(app, ["storage", "check", "--config", str(path)])

    assert result.exit_code == 0
    assert "memory" in result.output


def test_check_unknown_backend_fails(write_config):
    path = write_config("backend: dynamodb\n")

    result = runner.invoke(app, ["storage", "check", "-c", str(path)])

    assert result.exit_code == 1
    assert "Unknown storage backend 'dynamodb'" in result.output


def test_check_missing_config_file(tmp_path):
    result = runner.invoke(
        app, ["storage", "check", "-c", str(tmp_path / "absent.yaml")]
    )

    assert result.exit_code == 1
    assert "Could not load configuration" in result.output


def test_cleanup_reports_count(write_config):
    path = write_config("backend: memory\n")

    result = runner.invoke(app, ["storage", "cleanup", "-c", str(path)])

    assert result.exit_code == 0
    assert "Purged 0" in result.output


def test_init_db_creates_table(write_config, tmp_path):
    database = tmp_path / "artifacts.db"
    path = write_config(
        f"""
        backend: postgres
        postgres:
          url: "sqlite+aiosqlite:///{database}"
        """
    )

    result = runner.invoke(app, ["storage", "init-db", "-c", str(path)])

    assert result.exit_code == 0
    assert database.exists()

    # The created schema is usable by the backend itself
    result = runner.invoke(app, ["storage", "cleanup", "-c", str(path)])
    assert result.exit_code == 0


def test_init_db_rejects_non_relational_backend(write_config):
    path = write_config("backend: redis\n")

    result = runner.invoke(app, ["storage", "init-db", "-c", str(path)])

    assert result.exit_code == 1
    assert "relational backend" in result.output


def test_handle_error_exits_with_code():
    console = CLIConsole()

    with pytest.raises(typer.Exit) as excinfo:
        console.handle_error("Boom", details="extra", exit_code=3)

    assert excinfo.value.exit_code == 3
