from typing import Any
from urllib.parse import parse_qsl, urlsplit

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tablekit.db import Base, get_db
from tablekit.services.tables.registry import TableRegistry
from tests import tables as test_tables
from tests.models import Company, Post, User

TEST_SIGNING_KEY = "test-signing-key-for-table-callbacks"
CSRF_TOKEN = "test-csrf-token"


class _JoseDateTimeProxy:
    def utcnow(self):
        from datetime import datetime, timezone

        return datetime.now(timezone.utc)

    def now(self, tz: Any | None = None):
        from datetime import datetime

        return datetime.now(tz)

    def __getattr__(self, name: str) -> Any:
        from datetime import datetime

        return getattr(datetime, name)


@pytest.fixture(autouse=True)
def _patch_jose_datetime(monkeypatch):
    import jose.jwt as jose_jwt

    monkeypatch.setattr(jose_jwt, "datetime", _JoseDateTimeProxy(), raising=False)


@pytest.fixture(autouse=True)
def signing_env(monkeypatch):
    monkeypatch.setenv("TABLES_SIGNING_KEY", TEST_SIGNING_KEY)


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def registered_tables():
    for key, factory in test_tables.TABLE_FACTORIES.items():
        TableRegistry.register(table_key=key, factory=factory)
    test_tables.calls.clear()
    try:
        yield test_tables.calls
    finally:
        for key in test_tables.TABLE_FACTORIES:
            TableRegistry.unregister(key)
        test_tables.calls.clear()


@pytest.fixture()
def company(db_session):
    company = Company(name="Acme")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture()
def users(db_session, company):
    """Alice, Bob and Charlie; Alice has two posts, Bob one, Charlie none."""
    alice = User(name="Alice", email="alice@example.com", status="active", score=90, company=company)
    bob = User(name="Bob", email="bob@example.com", status="archived", score=40)
    charlie = User(name="Charlie", email="charlie@example.com", status="active", score=70)
    db_session.add_all([alice, bob, charlie])
    db_session.flush()
    db_session.add_all(
        [
            Post(user_id=alice.id, title="First", rating=4),
            Post(user_id=alice.id, title="Second", rating=2),
            Post(user_id=bob.id, title="Only", rating=5),
        ]
    )
    db_session.commit()
    return {"alice": alice, "bob": bob, "charlie": charlie}


@pytest.fixture()
def client(db_session, registered_tables):
    from tablekit.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        with TestClient(app) as test_client:
            test_client.cookies.set("csrf_token", CSRF_TOKEN)
            yield test_client
    finally:
        app.dependency_overrides.clear()


def callback_body(callback_url: str, **extra: Any) -> dict[str, Any]:
    """JSON body a client would post for a serialized callback URL."""
    query = dict(parse_qsl(urlsplit(callback_url).query))
    body: dict[str, Any] = {
        "table": query["table"],
        "name": query["name"],
        "action": query["action"],
    }
    body.update(extra)
    return body


def csrf_headers(**extra: str) -> dict[str, str]:
    return {"X-CSRF-Token": CSRF_TOKEN, **extra}
