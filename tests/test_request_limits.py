from linkshelf import create_app
from linkshelf.config import MemoryStoreTestConfig


class RateLimitedConfig(MemoryStoreTestConfig):
    RATELIMIT_ENABLED = True
    API_RATE_LIMIT = "3 per minute"


class SmallBodyConfig(MemoryStoreTestConfig):
    MAX_CONTENT_LENGTH = 1024


def test_api_requests_are_rate_limited():
    client = create_app(RateLimitedConfig).test_client()

    assert client.get("/api/health").status_code == 200
    assert client.get("/api/links/categories").status_code == 200
    assert client.get("/api/auth/check/alice").status_code == 200

    response = client.get("/api/health")
    assert response.status_code == 429
    assert response.get_json() == {
        "success": False,
        "error": "Too many requests, please try again later.",
    }
    assert client.post(
        "/api/auth/login", json={"username": "alice", "password": "secret1"}
    ).status_code == 429


def test_rate_limit_is_off_in_tests(memory_client):
    for _ in range(5):
        assert memory_client.get("/api/health").status_code == 200


def test_oversized_bodies_are_rejected():
    client = create_app(SmallBodyConfig).test_client()

    response = client.post(
        "/api/auth/register",
        json={"username": "alice", "password": "secret1", "padding": "x" * 2048},
    )

    assert response.status_code == 413
    assert response.get_json()["success"] is False
    assert client.post(
        "/api/auth/register", json={"username": "alice", "password": "secret1"}
    ).status_code == 201
