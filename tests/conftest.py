"""Shared fixtures: a throwaway SQLite database and an engine over it."""

import pytest

from swisscut.engine import TournamentEngine
from swisscut.models import Participant
from swisscut.storage import DatabaseManager

EVENT_ID = "spring-open"


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(str(tmp_path / "swisscut.sqlite"))
    manager.create_tables()
    return manager


@pytest.fixture
def session(db):
    session = db.get_session()
    yield session
    session.close()


@pytest.fixture
def make_engine(session):
    """Factory: engine with an optional roster p1..pN registered for EVENT_ID."""

    def factory(settings=None, players=0):
        engine = TournamentEngine.from_session(session, settings=settings)
        for i in range(1, players + 1):
            engine.participants.add(EVENT_ID, Participant(id=f"p{i}", name=f"Player {i}"))
        return engine

    return factory
