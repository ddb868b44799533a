# tests/test_migrations.py

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from dosetrack.db.base import Base

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "alembic"


def _config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def test_upgrade_creates_every_model_table_and_downgrade_drops_them(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'migrations.db'}"
    cfg = _config(url)

    command.upgrade(cfg, "head")

    engine = create_engine(url)
    try:
        tables = set(inspect(engine).get_table_names())
        assert set(Base.metadata.tables) <= tables

        columns = {c["name"] for c in inspect(engine).get_columns("notification_logs")}
        assert {"claim_token", "claimed_at", "attempt_count", "metadata"} <= columns
    finally:
        engine.dispose()

    command.downgrade(cfg, "base")

    engine = create_engine(url)
    try:
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
