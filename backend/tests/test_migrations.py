from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from sqlalchemy import create_engine, inspect

from scripts import run_migrations as runner

BACKEND_ROOT = Path(__file__).resolve().parent.parent


def _config(url: str):
    config = runner.get_alembic_config(str(BACKEND_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", url)
    return config


def _tables(url: str) -> set[str]:
    engine = create_engine(url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def test_resolve_database_url_falls_back_to_env(monkeypatch) -> None:
    monkeypatch.setenv("SKILL_TRACKER_DATABASE_URL", "sqlite://")
    config = runner.get_alembic_config(str(BACKEND_ROOT / "alembic.ini"))
    assert runner.resolve_database_url(config) == "sqlite://"
    assert config.get_main_option("sqlalchemy.url") == "sqlite://"


def test_resolve_database_url_requires_a_url(monkeypatch) -> None:
    monkeypatch.delenv("SKILL_TRACKER_DATABASE_URL", raising=False)
    config = runner.get_alembic_config(str(BACKEND_ROOT / "alembic.ini"))
    with pytest.raises(RuntimeError):
        runner.resolve_database_url(config)


def test_wait_for_database_succeeds_with_sqlite(tmp_path) -> None:
    runner.wait_for_database(f"sqlite:///{tmp_path / 'ready.db'}", timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    monkeypatch.setattr(runner.time, "sleep", lambda _: None)
    with pytest.raises(RuntimeError):
        runner.wait_for_database("sqlite:////nonexistent/dir/skills.db", timeout=0, poll_interval=0)


def test_upgrade_and_downgrade(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'schema.db'}"
    config = _config(url)

    runner.run_migrations("head", timeout=2, poll_interval=0.1, config=config)
    assert {"skills", "skill_entries", "progress_updates"} <= _tables(url)

    command.downgrade(config, "base")
    assert not {"skills", "skill_entries", "progress_updates"} & _tables(url)


def test_main_reports_failure(monkeypatch) -> None:
    monkeypatch.delenv("SKILL_TRACKER_DATABASE_URL", raising=False)
    assert runner.main(["--timeout", "0"]) == 1
