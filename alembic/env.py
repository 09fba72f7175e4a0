from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

from alembic import context

from callpause.config.settings import get_settings

# Import all database models for autogenerate support
from callpause.models.db_models import *  # noqa: F403, F401

config = context.config

# migrations.py sets the URL programmatically; the CLI falls back to settings
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", get_settings().database_url.replace('%', '%%'))

# Only configure logging from the ini when run from the alembic CLI, so the
# application's logging setup is not replaced during startup migrations.
if config.config_file_name is not None and not config.attributes.get("skip_logging_config"):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = SQLModel.metadata


def run_migrations_online() -> None:
    """Run migrations against a live connection (the only mode callpause uses)."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        # Batch mode works around SQLite ALTER TABLE limitations
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


run_migrations_online()
