"""
Shared fixtures: in-memory SQLite per test, FastAPI TestClient wired to it
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  registers the tables
from database import Base, get_db
from core.room_manager import RoomManager
from main import app
from tests.helpers import ALICE, BOB


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def room(db):
    """Alice's room for 2, Bob joined, nobody ready"""
    created = RoomManager.create_room(db, ALICE, "Friday night", 2)
    RoomManager.join_room(db, created.id, BOB)
    return RoomManager.get_room_by_id(db, created.id)


@pytest.fixture
def started_room(db, room):
    """Both ready, game started and dealt"""
    RoomManager.toggle_ready(db, room.id, ALICE)
    RoomManager.toggle_ready(db, room.id, BOB)
    RoomManager.start_game(db, room.id, ALICE.user_id)
    return RoomManager.get_room_by_id(db, room.id)
