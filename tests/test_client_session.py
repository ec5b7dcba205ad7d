import json

import httpx
import pytest

from linkshelf.client import (
    TAB_FAVORITES,
    TAB_READ,
    TAB_UNREAD,
    LinksApi,
    Session,
    SessionState,
    apply_tab_filter,
)
from linkshelf.errors import (
    DuplicateLinkError,
    InvalidCredentialsError,
    NotSignedInError,
    ServiceUnavailableError,
    TokenError,
    ValidationError,
)

LINKS = [
    {"id": "1", "url": "https://a.example", "timestamp": "2024-01-01T00:00:00.000Z", "isRead": 0, "isFavorite": 0},
    {"id": "2", "url": "https://b.example", "timestamp": "2024-01-02T00:00:00.000Z", "isRead": 1, "isFavorite": 1},
    {"id": "3", "url": "https://c.example", "timestamp": "2024-01-03T00:00:00.000Z", "isRead": 0, "isFavorite": 1},
]

UNAVAILABLE = (503, "Storage service unavailable")
EXPIRED = (403, "Invalid or expired token")


class _FakeServer:
    def __init__(self, links=None, fail=None):
        self.links = [dict(link) for link in links or []]
        self.fail = dict(fail or {})
        self.requests = []

    def __call__(self, request):
        key = (request.method, request.url.path)
        self.requests.append(key)
        if key in self.fail:
            status, message = self.fail[key]
            return httpx.Response(status, json={"success": False, "error": message})
        if key == ("POST", "/api/auth/login"):
            return httpx.Response(
                200, json={"success": True, "user": {"username": "alice"}, "token": "good"}
            )
        if key == ("GET", "/api/auth/verify"):
            if request.headers.get("Authorization") != "Bearer good":
                return httpx.Response(403, json={"success": False, "error": EXPIRED[1]})
            return httpx.Response(200, json={"success": True, "user": {"username": "alice"}})
        if key == ("GET", "/api/links"):
            return httpx.Response(200, json={"success": True, "links": self.links})
        if key == ("POST", "/api/links"):
            body = json.loads(request.content)
            link = {
                "id": "99",
                "url": body["url"],
                "title": "Server title",
                "timestamp": "2024-02-01T00:00:00.000Z",
                "isRead": 0,
                "isFavorite": 0,
            }
            self.links.insert(0, link)
            return httpx.Response(201, json={"success": True, "link": link})
        return httpx.Response(200, json={"success": True})


def _session(server, **kwargs):
    client = httpx.Client(base_url="http://linkshelf.test", transport=httpx.MockTransport(server))
    return Session(LinksApi(client=client), **kwargs)


def _signed_in(server, **kwargs):
    session = _session(server, **kwargs)
    session.sign_in("alice", "secret1")
    session.load_links()
    return session


def _ids(links):
    return [link["id"] for link in links]


def test_tab_filter_is_pure_and_newest_first():
    links = [dict(link) for link in LINKS]

    assert _ids(apply_tab_filter(links, TAB_UNREAD)) == ["3", "1"]
    assert _ids(apply_tab_filter(links, TAB_READ)) == ["2"]
    assert _ids(apply_tab_filter(links, TAB_FAVORITES)) == ["3", "2"]
    assert links == LINKS
    with pytest.raises(ValueError):
        apply_tab_filter(links, "archived")


def test_sign_in_loads_links_newest_first():
    session = _signed_in(_FakeServer(LINKS))

    assert session.state is SessionState.SIGNED_IN
    assert session.current_user == "alice"
    assert session.token == "good"
    assert _ids(session.links) == ["3", "2", "1"]
    assert _ids(session.visible_links()) == ["3", "1"]


def test_sign_in_failure_stays_signed_out():
    session = _session(_FakeServer(fail={("POST", "/api/auth/login"): (401, "Invalid credentials")}))

    with pytest.raises(InvalidCredentialsError):
        session.sign_in("alice", "wrong-one")
    assert session.state is SessionState.SIGNED_OUT


def test_link_operations_require_sign_in():
    server = _FakeServer(LINKS)
    session = _session(server)

    with pytest.raises(NotSignedInError):
        session.load_links()
    with pytest.raises(NotSignedInError):
        session.add_link_optimistic("https://example.com")
    with pytest.raises(NotSignedInError):
        session.toggle_read_optimistic("1")
    assert server.requests == []


def test_add_shows_pending_record_then_server_record():
    session = _signed_in(_FakeServer(LINKS))
    snapshots = []
    session.on_change(lambda current: snapshots.append([dict(link) for link in current.links]))

    link = session.add_link_optimistic("https://new.example", title="Mine")

    pending = snapshots[0][0]
    assert pending["id"].startswith("temp_")
    assert pending["isPending"] is True
    assert pending["title"] == "Mine"
    assert link["id"] == "99"
    assert _ids(session.links) == ["99", "3", "2", "1"]
    assert "isPending" not in session.links[0]


def test_failed_add_removes_pending_record():
    server = _FakeServer(LINKS, fail={("POST", "/api/links"): UNAVAILABLE})
    session = _signed_in(server)
    before = [dict(link) for link in session.links]
    snapshots, errors = [], []
    session.on_change(lambda current: snapshots.append(_ids(current.links)))
    session.on_error(lambda current, exc: errors.append(exc))

    with pytest.raises(ServiceUnavailableError):
        session.add_link_optimistic("https://new.example")

    assert snapshots[0][0].startswith("temp_")
    assert session.links == before
    assert isinstance(session.last_error, ServiceUnavailableError)
    assert errors == [session.last_error]
    assert session.signed_in


def test_failed_delete_restores_original_position():
    server = _FakeServer(LINKS, fail={("DELETE", "/api/links"): UNAVAILABLE})
    session = _signed_in(server)
    snapshots = []
    session.on_change(lambda current: snapshots.append(_ids(current.links)))

    with pytest.raises(ServiceUnavailableError):
        session.delete_link_optimistic("2")

    assert snapshots == [["3", "1"], ["3", "2", "1"]]
    assert _ids(session.links) == ["3", "2", "1"]


def test_failed_toggles_revert():
    server = _FakeServer(
        LINKS,
        fail={
            ("POST", "/api/links/mark-read"): UNAVAILABLE,
            ("POST", "/api/links/toggle-favorite"): UNAVAILABLE,
        },
    )
    session = _signed_in(server)
    seen = []
    session.on_change(lambda current: seen.append(current.links[2]["isRead"]))

    with pytest.raises(ServiceUnavailableError):
        session.toggle_read_optimistic("1")
    with pytest.raises(ServiceUnavailableError):
        session.toggle_favorite_optimistic("2")

    assert seen[:2] == [1, 0]
    assert session.links[2]["isRead"] == 0
    assert session.links[1]["isFavorite"] == 1


def test_successful_toggle_and_delete():
    server = _FakeServer(LINKS)
    session = _signed_in(server)

    session.toggle_read_optimistic("1")
    session.toggle_favorite_optimistic("1")
    session.delete_link_optimistic("3")

    assert _ids(session.links) == ["2", "1"]
    assert session.links[1]["isRead"] == 1
    assert session.links[1]["isFavorite"] == 1
    assert ("POST", "/api/links/mark-read") in server.requests
    assert ("DELETE", "/api/links") in server.requests


def test_rejected_token_forces_sign_out():
    server = _FakeServer(LINKS, fail={("POST", "/api/links/mark-read"): EXPIRED})
    session = _signed_in(server)

    with pytest.raises(TokenError):
        session.toggle_read_optimistic("1")

    assert session.state is SessionState.SIGNED_OUT
    assert session.token is None
    assert session.links == []


def test_cache_window():
    now = [0.0]
    server = _FakeServer(LINKS)
    session = _signed_in(server, clock=lambda: now[0])

    def fetches():
        return server.requests.count(("GET", "/api/links"))

    now[0] = 10.0
    session.load_links()
    assert fetches() == 1

    session.add_link_optimistic("https://new.example")
    session.load_links()
    assert _ids(session.links)[0] == "99"
    assert fetches() == 1

    now[0] = 31.0
    session.load_links()
    assert fetches() == 2

    session.load_links(force=True)
    assert fetches() == 3


def test_sign_out_always_ends_signed_out():
    server = _FakeServer(LINKS, fail={("POST", "/api/auth/logout"): UNAVAILABLE})
    session = _signed_in(server)

    session.sign_out()

    assert session.state is SessionState.SIGNED_OUT
    assert session.token is None
    assert session.links == []
    with pytest.raises(NotSignedInError):
        session.load_links()


def test_restore_from_stored_token():
    server = _FakeServer(LINKS)

    restored = _session(server)
    assert restored.restore("good") is True
    assert restored.current_user == "alice"

    rejected = _session(server)
    assert rejected.restore("stale") is False
    assert rejected.state is SessionState.SIGNED_OUT
    assert rejected.token is None


def test_network_errors_are_service_unavailable():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    session = _session(handler)

    with pytest.raises(ServiceUnavailableError):
        session.sign_in("alice", "secret1")


def test_session_against_running_app(memory_app):
    def api():
        transport = httpx.WSGITransport(app=memory_app)
        return LinksApi(client=httpx.Client(transport=transport, base_url="http://linkshelf.test"))

    session = Session(api())
    session.register("alice", "secret1")
    assert session.load_links() == []

    link = session.add_link_optimistic("https://example.com", category="Work")
    assert _ids(session.links) == [link["id"]]
    assert link["category"] == "Work"
    with pytest.raises(DuplicateLinkError):
        session.add_link_optimistic("https://example.com/")
    assert _ids(session.links) == [link["id"]]

    session.toggle_read_optimistic(link["id"])
    assert session.visible_links() == []
    session.set_tab(TAB_READ)
    assert _ids(session.visible_links()) == [link["id"]]

    session.toggle_favorite_optimistic(link["id"])
    session.set_tab(TAB_FAVORITES)
    assert _ids(session.visible_links()) == [link["id"]]

    other = Session(api())
    assert other.restore(session.token) is True
    assert _ids(other.load_links()) == [link["id"]]

    session.delete_link_optimistic(link["id"])
    assert session.load_links(force=True) == []

    session.sign_out()
    assert session.state is SessionState.SIGNED_OUT


def test_pending_records_cannot_be_changed_until_saved():
    server = _FakeServer(LINKS)
    session = _signed_in(server)
    blocked = []

    def try_changes(current):
        pending = current.links[0]
        if not pending.get("isPending") or blocked:
            return
        for action in (
            current.delete_link_optimistic,
            current.toggle_read_optimistic,
            current.toggle_favorite_optimistic,
        ):
            with pytest.raises(ValidationError):
                action(pending["id"])
        blocked.append(pending["id"])

    session.on_change(try_changes)
    session.add_link_optimistic("https://new.example")

    assert blocked and blocked[0].startswith("temp_")
    assert _ids(session.links) == ["99", "3", "2", "1"]
    assert ("DELETE", "/api/links") not in server.requests
    assert ("POST", "/api/links/mark-read") not in server.requests
    assert ("POST", "/api/links/toggle-favorite") not in server.requests
