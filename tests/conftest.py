import pytest

from linkshelf import create_app
from linkshelf.config import MemoryStoreTestConfig, TestConfig
from linkshelf.extensions import db


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def memory_app():
    return create_app(MemoryStoreTestConfig)


@pytest.fixture
def memory_client(memory_app):
    return memory_app.test_client()


@pytest.fixture(params=["sql", "memory"])
def any_app(request):
    if request.param == "memory":
        return create_app(MemoryStoreTestConfig)
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    return app


@pytest.fixture
def any_client(any_app):
    return any_app.test_client()


def register(client, username="alice", password="secret1"):
    response = client.post(
        "/api/auth/register", json={"username": username, "password": password}
    )
    assert response.status_code == 201
    return response.get_json()["token"]


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}
