"""Idempotent, additive schema initialization.

Deployments created before a column or index existed are brought up to date
by adding what is missing; nothing is dropped or altered in place. Running
``ensure_schema`` against an already-current database is a no-op.
"""

from __future__ import annotations

import logging

from sqlalchemy import Column, inspect
from sqlalchemy.engine import Connection, Engine

from relay_review.db.session import Base, engine as default_engine

logger = logging.getLogger(__name__)


def _add_column_ddl(connection: Connection, table_name: str, column: Column) -> str:
    preparer = connection.dialect.identifier_preparer
    col_type = column.type.compile(dialect=connection.dialect)
    ddl = (
        f"ALTER TABLE {preparer.quote(table_name)} "
        f"ADD COLUMN {preparer.quote(column.name)} {col_type}"
    )
    if column.server_default is not None:
        default_sql = column.server_default.arg.compile(dialect=connection.dialect)  # type: ignore[attr-defined]
        ddl += f" DEFAULT {default_sql}"
        if not column.nullable:
            ddl += " NOT NULL"
    # Without a server default a NOT NULL column cannot be added to populated tables,
    # so it is added as nullable.
    return ddl


def ensure_schema(bind: Engine | None = None) -> list[str]:
    """Create missing tables, columns and indexes.

    Args:
        bind: Engine to initialize; defaults to the application engine.

    Returns:
        Human-readable list of the changes applied (empty when already current).
    """
    target = bind or default_engine
    applied: list[str] = []

    with target.begin() as connection:
        existing_tables = set(inspect(connection).get_table_names())
        Base.metadata.create_all(bind=connection, checkfirst=True)
        for table in Base.metadata.sorted_tables:
            if table.name not in existing_tables:
                applied.append(f"create table {table.name}")

        inspector = inspect(connection)
        for table in Base.metadata.sorted_tables:
            if table.name not in existing_tables:
                continue

            present_columns = {col["name"] for col in inspector.get_columns(table.name)}
            for column in table.columns:
                if column.name in present_columns:
                    continue
                connection.exec_driver_sql(_add_column_ddl(connection, table.name, column))
                applied.append(f"add column {table.name}.{column.name}")

            present_indexes = {ix["name"] for ix in inspector.get_indexes(table.name)}
            for index in table.indexes:
                if index.name in present_indexes:
                    continue
                index.create(bind=connection)
                applied.append(f"create index {index.name}")

    for change in applied:
        logger.info("Schema change applied: %s", change)
    return applied


def drop_schema(bind: Engine | None = None) -> None:
    """Drop all service tables."""
    Base.metadata.drop_all(bind=bind or default_engine)
