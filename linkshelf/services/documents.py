"""Shared JSON document stores.

All users' data lives in a handful of named documents ("links", "credentials").
Writers never PUT a document they did not just read: ``update`` reads the
document together with a version token, lets the caller mutate its own part,
and writes back only if the version is unchanged. On a conflict the mutation is
re-applied to a fresh copy.

The remote JSON-bin service has no conditional PUT, so its version token is a
digest of the document re-checked right before the PUT. That leaves a small
window between check and write across processes; inside one process the
per-document lock closes it.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import threading
from typing import Any, Callable

import httpx

from linkshelf.errors import ServiceUnavailableError, StoreConflictError

LINKS_DOCUMENT = "links"
CREDENTIALS_DOCUMENT = "credentials"

STORE_STATUS_CONNECTED = "connected"
STORE_STATUS_ERROR = "error"
STORE_STATUS_MISSING_CONFIG = "missing_config"


def document_digest(document: dict) -> str:
    encoded = json.dumps(document, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class DocumentStore:
    backend = "base"

    def __init__(self, conflict_retries: int = 3, logger: logging.Logger | None = None):
        self.conflict_retries = conflict_retries
        self.logger = logger or logging.getLogger(__name__)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def read(self, name: str) -> tuple[dict, Any]:
        raise NotImplementedError

    def write(self, name: str, document: dict, expected_version: Any) -> Any:
        raise NotImplementedError

    def status(self) -> str:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.Lock()
                self._locks[name] = lock
            return lock

    def update(self, name: str, mutate: Callable[[dict], Any]) -> Any:
        """Apply ``mutate`` to a fresh copy of ``name`` and write it back.

        ``mutate`` edits the document in place and returns the value handed
        back to the caller. Exceptions raised by ``mutate`` abort the update
        before anything is written.
        """
        with self._lock_for(name):
            for attempt in range(self.conflict_retries + 1):
                document, version = self.read(name)
                result = mutate(document)
                try:
                    self.write(name, document, expected_version=version)
                except StoreConflictError:
                    self.logger.warning(
                        "Document %r changed during update (attempt %s), re-merging",
                        name,
                        attempt + 1,
                    )
                    continue
                return result
        raise ServiceUnavailableError(
            f"Could not update {name} after {self.conflict_retries + 1} attempts"
        )


class MemoryDocumentStore(DocumentStore):
    backend = "memory"

    def __init__(self, documents: dict[str, dict] | None = None, **kwargs):
        super().__init__(**kwargs)
        self._state_lock = threading.Lock()
        self._documents: dict[str, tuple[dict, int]] = {
            name: (copy.deepcopy(document), 0)
            for name, document in (documents or {}).items()
        }

    def read(self, name: str) -> tuple[dict, int]:
        with self._state_lock:
            document, version = self._documents.get(name, ({}, 0))
            return copy.deepcopy(document), version

    def write(self, name: str, document: dict, expected_version: int) -> int:
        with self._state_lock:
            _, current_version = self._documents.get(name, ({}, 0))
            if current_version != expected_version:
                raise StoreConflictError()
            new_version = current_version + 1
            self._documents[name] = (copy.deepcopy(document), new_version)
            return new_version

    def status(self) -> str:
        return STORE_STATUS_CONNECTED


class JsonBinDocumentStore(DocumentStore):
    backend = "jsonbin"

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        bins: dict[str, str | None],
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.bins = {name: bin_id for name, bin_id in bins.items() if bin_id}
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "X-Master-Key": api_key or "",
                "Content-Type": "application/json",
            },
        )

    def _bin_id(self, name: str) -> str:
        bin_id = self.bins.get(name)
        if not bin_id or not self.api_key:
            raise ServiceUnavailableError(f"Document store for {name} is not configured")
        return bin_id

    def _fetch(self, name: str) -> dict:
        bin_id = self._bin_id(name)
        try:
            response = self._client.get(f"/{bin_id}/latest", headers={"X-Bin-Meta": "false"})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ServiceUnavailableError(
                f"JSON document store error: {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ServiceUnavailableError("JSON document store error: network error") from exc
        return payload if isinstance(payload, dict) else {}

    def read(self, name: str) -> tuple[dict, str]:
        document = self._fetch(name)
        return document, document_digest(document)

    def write(self, name: str, document: dict, expected_version: str) -> str:
        current = self._fetch(name)
        if document_digest(current) != expected_version:
            raise StoreConflictError()
        bin_id = self._bin_id(name)
        try:
            response = self._client.put(f"/{bin_id}", json=document)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ServiceUnavailableError(
                f"JSON document store error: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ServiceUnavailableError("JSON document store error: network error") from exc
        return document_digest(document)

    def status(self) -> str:
        if not self.api_key or CREDENTIALS_DOCUMENT not in self.bins:
            return STORE_STATUS_MISSING_CONFIG
        try:
            self._fetch(CREDENTIALS_DOCUMENT)
        except ServiceUnavailableError:
            return STORE_STATUS_ERROR
        return STORE_STATUS_CONNECTED

    def close(self) -> None:
        self._client.close()
