"""
Shared pytest fixtures.

Every test gets its own in-memory SQLite database (StaticPool so that all
sessions share one connection) and its own AggregateStore.
"""

from __future__ import annotations

import os

# Must be set before statcounter.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RETENTION_ENABLED", "false")
os.environ.setdefault("SESSION_SECRET", "test-secret")

from collections.abc import Generator, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from statcounter.database import get_db, init_db
from statcounter.main import create_app
from statcounter.models.region import Region
from statcounter.models.user import User, UserRole
from statcounter.services.auth import hash_password
from statcounter.services.summa import AggregateStore


@pytest.fixture()
def engine() -> Iterator[Engine]:
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    SQLModel.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def session(engine: Engine) -> Iterator[Session]:
    with Session(engine) as s:
        yield s


@pytest.fixture()
def summa() -> AggregateStore:
    return AggregateStore()


@pytest.fixture()
def regions(session: Session) -> dict[str, Region]:
    north = Region(name="North")
    south = Region(name="South")
    session.add(north)
    session.add(south)
    session.commit()
    session.refresh(north)
    session.refresh(south)
    return {"north": north, "south": south}


@pytest.fixture()
def users(session: Session, regions: dict[str, Region]) -> dict[str, User]:
    created = {
        "alice": User(
            username="alice",
            password_hash=hash_password("alice-pw", iterations=1000),
            region_id=regions["north"].id,
        ),
        "bob": User(
            username="bob",
            password_hash=hash_password("bob-pw", iterations=1000),
            region_id=regions["north"].id,
        ),
        "carol": User(
            username="carol",
            password_hash=hash_password("carol-pw", iterations=1000),
            region_id=regions["south"].id,
        ),
        "root": User(
            username="root",
            password_hash=hash_password("root-pw", iterations=1000),
            role=UserRole.ADMIN,
            region_id=regions["south"].id,
        ),
    }
    for user in created.values():
        session.add(user)
    session.commit()
    return created


@pytest.fixture()
def client(engine: Engine, summa: AggregateStore, users: dict[str, User]) -> Iterator[TestClient]:
    app = create_app(summa=summa, retention=False, create_tables=False)

    def _get_db() -> Generator[Session, None, None]:
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def login(client: TestClient):
    """Log the shared test client in as `username` (password is '<username>-pw')."""

    def _login(username: str) -> TestClient:
        resp = client.post("/auth/login", json={"username": username, "password": f"{username}-pw"})
        assert resp.status_code == 200, resp.text
        return client

    return _login
