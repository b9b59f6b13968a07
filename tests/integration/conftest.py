import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from photomatch.config.settings import Settings
from photomatch.database.connection import close_pool, create_schema, get_connection, init_pool
from photomatch.database.models import EventRecord
from photomatch.database.repositories.event_repository import EventRepository


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "photomatch_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        create_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def seed_event(db_conn: psycopg.Connection[Any]) -> Generator[EventRecord, None, None]:
    event = EventRecord(
        id=f"it-{uuid.uuid4()}",
        name="Integration Gala",
        organizer_email="org@example.com",
        email_access=["guest@example.com"],
    )
    EventRepository().save(event)
    try:
        yield event
    finally:
        with db_conn.cursor() as cur:
            cur.execute("DELETE FROM events WHERE id = %s", (event.id,))
        db_conn.commit()
