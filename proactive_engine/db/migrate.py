#  Proactive Engine - Migration Runner
#
#  Programmatic Alembic runner for applying migrations at startup.
#  Databases created from the inline schema carry no alembic_version row;
#  they are stamped at the newest revision whose marker table is present.
#
#  Depends on: proactive_engine/migrations/
#  Used by:    proactive_engine/db/connection.py

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

logger = logging.getLogger("proactive.migrate")

_MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

# (revision, table first created by it), newest first
_REVISION_MARKERS = (
    ("002", "insights_cache"),
    ("001", "ceremonies"),
)


def _alembic_config(url: str) -> Config:
    alembic_cfg = Config(str(_MIGRATIONS_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", url)
    alembic_cfg.set_main_option("script_location", str(_MIGRATIONS_DIR))
    return alembic_cfg


def detect_unversioned_revision(tables: set[str] | list[str]) -> str | None:
    """Revision an unversioned schema already matches, or None for an empty database."""
    present = set(tables)
    for revision, marker in _REVISION_MARKERS:
        if marker in present:
            return revision
    return None


def run_migrations(db_path: str | Path) -> None:
    """Bring the database at db_path up to the head revision.

    Fresh databases get every migration. Unversioned databases (built from
    the inline schema) are stamped first so existing tables are not recreated.
    """
    url = f"sqlite:///{Path(db_path)}"
    alembic_cfg = _alembic_config(url)

    engine = create_engine(url)
    try:
        with engine.connect():
            tables = inspect(engine).get_table_names()

        if "alembic_version" not in tables:
            revision = detect_unversioned_revision(tables)
            if revision is None:
                logger.info("Fresh database, running all migrations")
            else:
                logger.info("Unversioned database detected, stamping at revision %s", revision)
                command.stamp(alembic_cfg, revision)

        command.upgrade(alembic_cfg, "head")
        logger.info("Migrations complete (head)")
    finally:
        engine.dispose()
