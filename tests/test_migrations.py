"""Migration upgrade, rollback and re-upgrade coverage."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory


def _alembic_config() -> Config:
    project_root = Path(__file__).resolve().parents[1]
    return Config(str(project_root / "alembic.ini"))


def _current_revision(database_file: Path) -> str | None:
    connection = sqlite3.connect(database_file)
    try:
        row = connection.execute("SELECT version_num FROM alembic_version").fetchone()
        if row is None:
            return None
        return str(row[0])
    finally:
        connection.close()


def _table_exists(database_file: Path, table_name: str) -> bool:
    connection = sqlite3.connect(database_file)
    try:
        row = connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,),
        ).fetchone()
        return row is not None
    finally:
        connection.close()


def test_alembic_upgrade_downgrade_and_reupgrade(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    database_file = tmp_path / "migration-test.sqlite"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{database_file}")

    config = _alembic_config()
    expected_head = ScriptDirectory.from_config(config).get_current_head()
    assert expected_head is not None

    command.upgrade(config, "head")

    assert _current_revision(database_file) == expected_head
    assert _table_exists(database_file, "kv_entries")

    command.downgrade(config, "base")

    assert _current_revision(database_file) is None
    assert _table_exists(database_file, "kv_entries") is False

    command.upgrade(config, "head")

    assert _current_revision(database_file) == expected_head
    assert _table_exists(database_file, "kv_entries")
