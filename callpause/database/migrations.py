"""
Startup schema upgrade for the pause session log.

Applies the Alembic revisions under `alembic/` and checks that the tables the
pause coordinator writes to exist afterwards.
"""

import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine, inspect

logger = logging.getLogger(__name__)

PAUSE_TABLES = ("pause_reasons", "pause_sessions", "queue_members", "agents", "events")


def get_alembic_config(database_url: str) -> Config:
    """
    Build the Alembic config for the project's alembic.ini.

    Raises:
        FileNotFoundError: If alembic.ini not found
    """
    project_dir = Path(__file__).parent.parent.parent
    alembic_ini = project_dir / "alembic.ini"

    if not alembic_ini.exists():
        raise FileNotFoundError(f"Alembic configuration not found: {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(project_dir / "alembic"))
    config.attributes["skip_logging_config"] = True
    # ConfigParser interpolation: URL-encoded passwords need %%
    config.set_main_option("sqlalchemy.url", database_url.replace('%', '%%'))
    return config


def _schema_state(database_url: str) -> tuple[Optional[str], set[str]]:
    """Current revision and the pause tables already present."""
    engine = create_engine(database_url)
    try:
        with engine.connect() as connection:
            revision = MigrationContext.configure(connection).get_current_revision()
            existing = set(inspect(connection).get_table_names())
    finally:
        engine.dispose()
    return revision, existing & set(PAUSE_TABLES)


def run_migrations(database_url: str) -> bool:
    """
    Upgrade the schema to head. Safe to call on every startup.

    Raises:
        FileNotFoundError: If alembic.ini is missing
        SQLAlchemyError: If the database cannot be reached
        RuntimeError: If pause tables are still missing after the upgrade
    """
    config = get_alembic_config(database_url)
    before, _ = _schema_state(database_url)
    logger.info(f"Session log schema revision: {before or '<none>'}")

    try:
        command.upgrade(config, "head")
    except Exception as e:
        logger.error(f"Alembic upgrade failed: {e}", exc_info=True)
        raise

    after, present = _schema_state(database_url)
    missing = [table for table in PAUSE_TABLES if table not in present]
    if missing:
        raise RuntimeError(f"Schema upgrade to {after} left pause tables missing: {', '.join(missing)}")

    if after != before:
        logger.info(f"Session log schema upgraded {before or '<none>'} -> {after}")
    else:
        logger.info("Session log schema is up-to-date")
    return True
