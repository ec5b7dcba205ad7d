"""Client-side session state with optimistic link mutations.

Every mutation is applied to ``Session.links`` first and then confirmed with
the server. Listeners registered through ``on_change`` see the optimistic state
before the request returns. A failed request runs the inverse mutation, so the
local list ends up exactly as it was before the attempt.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from linkshelf.client.api import LinksApi
from linkshelf.errors import (
    AuthError,
    LinkNotFoundError,
    LinkShelfError,
    NotSignedInError,
    ValidationError,
)
from linkshelf.services.common import sort_newest_first, title_from_url, utcnow_iso

logger = logging.getLogger(__name__)

TAB_UNREAD = "unread"
TAB_READ = "read"
TAB_FAVORITES = "favorites"
TABS = (TAB_UNREAD, TAB_READ, TAB_FAVORITES)

DEFAULT_CACHE_TTL = 30.0
TEMP_ID_PREFIX = "temp_"


def apply_tab_filter(links: list[dict], tab: str) -> list[dict]:
    if tab == TAB_UNREAD:
        selected = [link for link in links if not link.get("isRead")]
    elif tab == TAB_READ:
        selected = [link for link in links if link.get("isRead")]
    elif tab == TAB_FAVORITES:
        selected = [link for link in links if link.get("isFavorite")]
    else:
        raise ValueError(f"Unknown tab: {tab}")
    return sort_newest_first(selected)


class SessionState(enum.Enum):
    SIGNED_OUT = "signed_out"
    SIGNED_IN = "signed_in"


@dataclass
class OptimisticCommand:
    """A local mutation, its inverse, and the server call that confirms it."""

    name: str
    forward: Callable[[], None]
    inverse: Callable[[], None]
    confirm: Callable[[], Any]
    reconcile: Callable[[Any], None] | None = None


class Session:
    def __init__(
        self,
        api: LinksApi,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.cache_ttl = cache_ttl
        self.clock = clock
        self.state = SessionState.SIGNED_OUT
        self.current_user: str | None = None
        self.links: list[dict] = []
        self.tab = TAB_UNREAD
        self.last_error: LinkShelfError | None = None
        self._cache: dict[str, tuple[list[dict], float]] = {}
        self._listeners: list[Callable[["Session"], None]] = []
        self._error_listeners: list[Callable[["Session", LinkShelfError], None]] = []

    # Listeners

    def on_change(self, callback: Callable[["Session"], None]) -> None:
        self._listeners.append(callback)

    def on_error(self, callback: Callable[["Session", LinkShelfError], None]) -> None:
        self._error_listeners.append(callback)

    def _changed(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    def _report(self, exc: LinkShelfError) -> None:
        self.last_error = exc
        for callback in list(self._error_listeners):
            callback(self, exc)

    # Session lifecycle

    @property
    def token(self) -> str | None:
        return self.api.token

    @property
    def signed_in(self) -> bool:
        return self.state is SessionState.SIGNED_IN

    def _enter(self, username: str) -> None:
        self.state = SessionState.SIGNED_IN
        self.current_user = username
        self.links = []
        self.last_error = None
        self._changed()

    def _reset(self) -> None:
        self.api.token = None
        self.state = SessionState.SIGNED_OUT
        self.current_user = None
        self.links = []
        self.tab = TAB_UNREAD
        self._cache.clear()
        self._changed()

    def sign_in(self, username: str, password: str) -> None:
        payload = self.api.login(username, password)
        self._enter(payload["user"]["username"])

    def register(self, username: str, password: str) -> None:
        payload = self.api.register(username, password)
        self._enter(payload["user"]["username"])

    def reset_password(self, username: str, new_password: str) -> None:
        payload = self.api.reset_password(username, new_password)
        self._enter(payload["user"]["username"])

    def restore(self, token: str) -> bool:
        """Resume a session from a stored token; False if the server rejects it."""
        self.api.token = token
        try:
            payload = self.api.verify()
        except AuthError:
            self._reset()
            return False
        self._enter(payload["user"]["username"])
        return True

    def sign_out(self) -> None:
        try:
            if self.api.token:
                self.api.logout()
        except LinkShelfError as exc:
            logger.info("Logout request failed, signing out locally: %s", exc)
        finally:
            self._reset()

    def _require_signed_in(self) -> None:
        if not self.signed_in:
            raise NotSignedInError("Sign in to manage links")

    def _call(self, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except AuthError:
            logger.info("Server rejected the session token, signing out")
            self._reset()
            raise

    # Cache

    def _cache_is_fresh(self) -> bool:
        entry = self._cache.get(self.current_user)
        return entry is not None and self.clock() - entry[1] < self.cache_ttl

    def _sync_cache(self) -> None:
        entry = self._cache.get(self.current_user)
        if entry is not None:
            self._cache[self.current_user] = (list(self.links), entry[1])

    def load_links(self, force: bool = False) -> list[dict]:
        self._require_signed_in()
        if not force and self._cache_is_fresh():
            self.links = list(self._cache[self.current_user][0])
            self._changed()
            return self.links

        links = self._call(self.api.list_links)
        self.links = sort_newest_first(links)
        self._cache[self.current_user] = (list(self.links), self.clock())
        self._changed()
        return self.links

    # Views

    def set_tab(self, tab: str) -> None:
        if tab not in TABS:
            raise ValueError(f"Unknown tab: {tab}")
        self.tab = tab
        self._changed()

    def visible_links(self) -> list[dict]:
        return apply_tab_filter(self.links, self.tab)

    # Optimistic mutations

    def _index_of(self, link_id: str) -> int:
        for index, link in enumerate(self.links):
            if str(link.get("id")) == str(link_id):
                return index
        raise LinkNotFoundError()

    def _settled_index_of(self, link_id: str) -> int:
        index = self._index_of(link_id)
        link = self.links[index]
        if link.get("isPending") or str(link.get("id")).startswith(TEMP_ID_PREFIX):
            raise ValidationError("Link is still being saved")
        return index

    def _run(self, command: OptimisticCommand) -> Any:
        self._require_signed_in()
        command.forward()
        self._sync_cache()
        self._changed()
        try:
            result = self._call(command.confirm)
        except LinkShelfError as exc:
            logger.warning("%s failed, rolling back: %s", command.name, exc)
            if self.signed_in:
                command.inverse()
                self._sync_cache()
                self._changed()
            self._report(exc)
            raise
        if command.reconcile is not None:
            command.reconcile(result)
            self._sync_cache()
            self._changed()
        return result

    def add_link_optimistic(
        self, url: str, title: str | None = None, category: str | None = None
    ) -> dict:
        now = utcnow_iso()
        temp = {
            "id": f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}",
            "url": url,
            "title": title or title_from_url(url),
            "category": category or "general",
            "dateAdded": now,
            "timestamp": now,
            "isRead": 0,
            "isFavorite": 0,
            "isPending": True,
        }

        def forward():
            self.links.insert(0, temp)

        def inverse():
            self.links = [link for link in self.links if link is not temp]

        def reconcile(server_link: dict):
            self.links = [server_link if link is temp else link for link in self.links]

        return self._run(
            OptimisticCommand(
                name="add link",
                forward=forward,
                inverse=inverse,
                confirm=lambda: self.api.add_link(url, title=title, category=category),
                reconcile=reconcile,
            )
        )

    def delete_link_optimistic(self, link_id: str) -> None:
        self._require_signed_in()
        index = self._settled_index_of(link_id)
        removed = self.links[index]

        def forward():
            self.links.pop(self._index_of(link_id))

        def inverse():
            self.links.insert(min(index, len(self.links)), removed)

        self._run(
            OptimisticCommand(
                name="delete link",
                forward=forward,
                inverse=inverse,
                confirm=lambda: self.api.remove_link(link_id),
            )
        )

    def _toggle(self, link_id: str, field: str, confirm: Callable[[bool], Any]) -> dict:
        self._require_signed_in()
        link = self.links[self._settled_index_of(link_id)]
        previous = 1 if link.get(field) else 0
        flipped = 0 if previous else 1

        def forward():
            link[field] = flipped

        def inverse():
            link[field] = previous

        def reconcile(payload: dict):
            server_link = payload.get("link") if isinstance(payload, dict) else None
            if server_link:
                link.update(server_link)

        self._run(
            OptimisticCommand(
                name=f"toggle {field}",
                forward=forward,
                inverse=inverse,
                confirm=lambda: confirm(bool(flipped)),
                reconcile=reconcile,
            )
        )
        return link

    def toggle_read_optimistic(self, link_id: str) -> dict:
        return self._toggle(link_id, "isRead", lambda value: self.api.mark_read(link_id, value))

    def toggle_favorite_optimistic(self, link_id: str) -> dict:
        return self._toggle(
            link_id, "isFavorite", lambda value: self.api.set_favorite(link_id, value)
        )
