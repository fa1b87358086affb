import os
import tempfile
from pathlib import Path

os.environ["ENV"] = "test"
os.environ.setdefault(
    "TEST_DATABASE_URL",
    f"sqlite:///{Path(tempfile.mkdtemp(prefix='faxlink-test-')) / 'faxlink.db'}",
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from faxlink.db import Base, db_manager, get_db  # noqa: E402
import faxlink.models  # noqa: E402,F401

pytest_plugins = [
    "tests.fixtures.conversation_context_fixtures",
]


@pytest.fixture(scope="session")
def engine():
    engine = db_manager.configure(os.environ["TEST_DATABASE_URL"])
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """Session per test; every table is emptied afterwards."""
    session = db_manager.session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())


@pytest.fixture
def client(db):
    """Client with db override and testing mode."""
    from faxlink.main import create_app

    app = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
