import pytest
from fastapi.testclient import TestClient

from src.api.config import Settings
from src.api.main import create_app
from src.db.db import Database

SECRET = "test-secret"


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", jwt_secret=SECRET)


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def db_session(database):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def register(client, name="John", email="john@x.com", password="secret12"):
    """Register through the API and return the JSON body (includes the token)."""
    resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def john(client):
    return register(client)


@pytest.fixture
def jane(client):
    return register(client, name="Jane", email="jane@x.com", password="hunter22")
