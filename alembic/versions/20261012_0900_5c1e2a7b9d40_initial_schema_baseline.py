"""Initial schema baseline

Creates the pause reason catalog, pause session log, agent presence,
realtime queue member and event tables. Tables that already exist are
left alone, since queue_members and agents are often provisioned by the
PBX installation before this service first starts.

Revision ID: 5c1e2a7b9d40
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = "5c1e2a7b9d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - create missing tables from SQLModel metadata."""
    from sqlmodel import SQLModel

    import callpause.models.db_models  # noqa: F401

    connection = op.get_bind()
    existing_tables = set(inspect(connection).get_table_names())

    missing = [
        table for name, table in SQLModel.metadata.tables.items()
        if name not in existing_tables
    ]
    if missing:
        SQLModel.metadata.create_all(connection, tables=missing)


def downgrade() -> None:
    """Downgrade schema - baseline, drops only tables owned by this service."""
    op.drop_table("events")
    op.drop_table("pause_sessions")
    op.drop_table("pause_reasons")
