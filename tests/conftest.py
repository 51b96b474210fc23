# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from relay_review.core.settings import settings
from relay_review.db.schema import ensure_schema
from relay_review.db.session import Base
from relay_review.db.session import get_db as app_get_session
from relay_review.main import app as fastapi_app
from relay_review.schemas.event import KIND_REPORT, KIND_TEXT_NOTE, Event
from relay_review.services.event_store import InMemoryEventStore, get_event_store

TEST_DB_URL = "sqlite://"

_CREATED_AT_COUNTER = count(1_700_000_000)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ensure_schema(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

        # Ledger operations commit, so each test starts from empty tables.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def event_store(app: FastAPI) -> Iterator[InMemoryEventStore]:
    store = InMemoryEventStore()
    app.dependency_overrides[get_event_store] = lambda: store
    try:
        yield store
    finally:
        app.dependency_overrides.pop(get_event_store, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def moderator_headers() -> dict[str, str]:
    """Return authorization headers for a moderator identity."""
    token = jwt.encode({"sub": "ab" * 32}, settings.secret_key, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}


def pubkey(label: str) -> str:
    """Deterministic 64-hex identity for a readable label."""
    return (label.encode().hex() * 64)[:64]


def make_event(
    event_id: str,
    *,
    author: str = "author",
    kind: int = KIND_TEXT_NOTE,
    created_at: int | None = None,
    tags: list[list[str]] | None = None,
    content: str = "",
) -> Event:
    return Event(
        id=event_id,
        pubkey=pubkey(author),
        kind=kind,
        created_at=next(_CREATED_AT_COUNTER) if created_at is None else created_at,
        tags=tags or [],
        content=content,
    )


def make_report(
    report_id: str,
    target_event: str | None = None,
    *,
    reporter: str = "reporter",
    reported: str | None = None,
    category: str | None = None,
    tags: list[list[str]] | None = None,
) -> Event:
    """Build a report using the categorized ``e``/``p`` tag convention."""
    built: list[list[str]] = []
    if target_event is not None:
        built.append(["e", target_event, category] if category else ["e", target_event])
    if reported is not None:
        built.append(["p", pubkey(reported)])
    built.extend(tags or [])
    return make_event(report_id, author=reporter, kind=KIND_REPORT, tags=built)


@pytest.fixture()
def event_factory() -> Callable[..., Event]:
    return make_event


@pytest.fixture()
def report_factory() -> Callable[..., Any]:
    return make_report
