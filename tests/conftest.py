import os

# Must be set before fortyfive.core.config builds its settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("SPOONACULAR_API_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fortyfive.core.db import Base, get_db  # noqa: E402
from fortyfive.main import app  # noqa: E402
from fortyfive.models import HealthSample  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
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
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def add_samples(db):
    """Insert raw health samples: add_samples(user_id, kind, [(timestamp, value), ...])."""

    def _add(user_id, kind, samples, source="apple_health"):
        for ts, value in samples:
            db.add(HealthSample(user_id=user_id, kind=kind.value, timestamp=ts, value=value, source=source))
        db.commit()

    return _add
