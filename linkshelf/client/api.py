"""HTTP client for the LinkShelf JSON API."""

from __future__ import annotations

import logging

import httpx

from linkshelf.errors import ServiceUnavailableError, error_for_status

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8072"


class LinksApi:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self.token = token
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            response = self._client.request(method, f"/api{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ServiceUnavailableError("Network error") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise error_for_status(response.status_code, message)
        return payload if isinstance(payload, dict) else {"success": True}

    def _remember_token(self, payload: dict) -> dict:
        if payload.get("token"):
            self.token = payload["token"]
        return payload

    # Auth

    def register(self, username: str, password: str) -> dict:
        payload = self._request(
            "POST", "/auth/register", json={"username": username, "password": password}
        )
        return self._remember_token(payload)

    def login(self, username: str, password: str) -> dict:
        payload = self._request(
            "POST", "/auth/login", json={"username": username, "password": password}
        )
        return self._remember_token(payload)

    def reset_password(self, username: str, new_password: str) -> dict:
        payload = self._request(
            "POST",
            "/auth/reset-password",
            json={"username": username, "newPassword": new_password},
        )
        return self._remember_token(payload)

    def check_username(self, username: str) -> bool:
        return bool(self._request("GET", f"/auth/check/{username}").get("exists"))

    def verify(self) -> dict:
        return self._request("GET", "/auth/verify")

    def logout(self) -> dict:
        try:
            return self._request("POST", "/auth/logout")
        finally:
            self.token = None

    # Links

    def list_links(self) -> list[dict]:
        return self._request("GET", "/links").get("links", [])

    def add_link(self, url: str, title: str | None = None, category: str | None = None) -> dict:
        body = {"url": url}
        if title:
            body["title"] = title
        if category:
            body["category"] = category
        return self._request("POST", "/links", json=body).get("link", {})

    def remove_link(self, link_id: str) -> dict:
        return self._request("DELETE", "/links", params={"id": link_id})

    def update_link(self, link_id: str, **fields) -> dict:
        body = {key: value for key, value in fields.items() if value is not None}
        return self._request("PUT", f"/links/{link_id}", json=body).get("link", {})

    def mark_read(self, link_id: str, is_read: bool = True) -> dict:
        return self._request(
            "POST", "/links/mark-read", json={"linkId": link_id, "isRead": int(is_read)}
        )

    def set_favorite(self, link_id: str, is_favorite: bool) -> dict:
        return self._request(
            "POST",
            "/links/toggle-favorite",
            json={"linkId": link_id, "isFavorite": int(is_favorite)},
        )

    def categories(self) -> list[str]:
        return self._request("GET", "/links/categories").get("categories", [])

    def health(self) -> dict:
        return self._request("GET", "/health")
