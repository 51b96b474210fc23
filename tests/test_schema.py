# tests/test_schema.py
from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from relay_review.db.schema import drop_schema, ensure_schema


@pytest.fixture()
def fresh_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    try:
        yield engine
    finally:
        engine.dispose()


def test_creates_tables_then_is_a_no_op(fresh_engine: Engine) -> None:
    first = ensure_schema(fresh_engine)

    assert "create table moderation_decisions" in first
    assert "create table moderation_targets" in first
    assert ensure_schema(fresh_engine) == []


def test_adds_missing_review_flag_to_existing_table(fresh_engine: Engine) -> None:
    with fresh_engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE moderation_targets (target_id VARCHAR(128) PRIMARY KEY, target_type VARCHAR(16) NOT NULL)"
        )
        conn.exec_driver_sql("INSERT INTO moderation_targets VALUES ('t1', 'event')")

    applied = ensure_schema(fresh_engine)

    assert "add column moderation_targets.ever_human_reviewed" in applied
    assert "create table moderation_decisions" in applied
    with fresh_engine.connect() as conn:
        flag = conn.exec_driver_sql("SELECT ever_human_reviewed FROM moderation_targets").scalar_one()
    assert not flag


def test_recreates_missing_index(fresh_engine: Engine) -> None:
    ensure_schema(fresh_engine)
    with fresh_engine.begin() as conn:
        conn.exec_driver_sql("DROP INDEX idx_decisions_action")

    assert ensure_schema(fresh_engine) == ["create index idx_decisions_action"]
    index_names = {ix["name"] for ix in inspect(fresh_engine).get_indexes("moderation_decisions")}
    assert "idx_decisions_action" in index_names


def test_drop_schema_removes_tables(fresh_engine: Engine) -> None:
    ensure_schema(fresh_engine)

    drop_schema(fresh_engine)

    assert inspect(fresh_engine).get_table_names() == []
