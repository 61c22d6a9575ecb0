import os
import tempfile

# Point the reference store at a throwaway SQLite file before flightfeed is imported
_db_dir = tempfile.mkdtemp(prefix='flightfeed-tests-')
os.environ['DATABASE_URL'] = f'sqlite:///{os.path.join(_db_dir, "reference.db")}'

import pytest

from flightfeed.models import Airline, Airport, SessionLocal, init_db

from fakes import FakeClock, FakeSession, FakeTokenSource


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def token_source():
    return FakeTokenSource()


@pytest.fixture
def reference_db():
    init_db()
    yield
    with SessionLocal() as db:
        db.query(Airline).delete()
        db.query(Airport).delete()
        db.commit()
