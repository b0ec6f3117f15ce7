import pytest
from fastapi.testclient import TestClient

from talaty_platform.talaty_platform.auth_service.config import load_settings
from talaty_platform.talaty_platform.auth_service.db import Base, SessionLocal, get_engine
from talaty_platform.talaty_platform.auth_service.main import create_app

from .helpers import TEST_SECRETS


@pytest.fixture(scope="session")
def settings(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("db") / "test_auth.db"
    return load_settings(
        **TEST_SECRETS,
        DATABASE_URL=f"sqlite:///{db_path}",
        PASSWORD_HASH_ROUNDS=1000,
        ENVIRONMENT="test",
        LOG_LEVEL="WARNING",
        LOG_DIR="",
    )


@pytest.fixture(scope="session")
def app(settings):
    return create_app(settings)


@pytest.fixture(scope="session")
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def reset_database(app):
    # Drop all tables and recreate them before each test
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture
def db_session(reset_database):
    session = SessionLocal()
    yield session
    session.close()
