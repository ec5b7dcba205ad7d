from __future__ import annotations

import copy
import time

from sqlalchemy.exc import SQLAlchemyError

from linkshelf.errors import (
    DuplicateLinkError,
    InvalidUrlError,
    LinkNotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from linkshelf.extensions import db
from linkshelf.models import Link, utcnow
from linkshelf.services.common import (
    domain_from_url,
    is_valid_url,
    normalize_url,
    parse_timestamp,
    sort_newest_first,
    title_from_url,
    to_flag,
    utcnow_iso,
)
from linkshelf.services.documents import LINKS_DOCUMENT, DocumentStore

DEFAULT_CATEGORY = "general"
DEFAULT_CATEGORIES = (
    "general",
    "Sports",
    "Entertainment",
    "Work",
    "Business",
    "Reading",
    "Technology",
    "Education",
    "Other",
)


def _find_link(links: list[dict], link_id: str) -> dict:
    for link in links:
        if str(link.get("id")) == link_id:
            return link
    raise LinkNotFoundError()


def _same_url(stored, normalized: str) -> bool:
    # Legacy records may hold URLs that no longer parse.
    if not isinstance(stored, str):
        return False
    try:
        return normalize_url(stored) == normalized
    except ValueError:
        return False


def _has_url(links: list[dict], url: str, skip_id: str | None = None) -> bool:
    normalized = normalize_url(url)
    return any(
        _same_url(link.get("url"), normalized)
        for link in links
        if skip_id is None or str(link.get("id")) != skip_id
    )


class DocumentLinkRepository:
    """Links kept as per-user buckets inside the shared links document."""

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def _bucket(document: dict, user_hash: str, username: str | None) -> dict:
        bucket = document.get(user_hash)
        if not isinstance(bucket, dict):
            bucket = {"username": username, "links": []}
            document[user_hash] = bucket
        if not isinstance(bucket.get("links"), list):
            bucket["links"] = []
        if username and not bucket.get("username"):
            bucket["username"] = username
        return bucket

    @staticmethod
    def _next_id(links: list[dict]) -> str:
        taken = {str(link.get("id")) for link in links}
        candidate = int(time.time() * 1000)
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def list(self, user_hash: str) -> list[dict]:
        document, _ = self.store.read(LINKS_DOCUMENT)
        bucket = document.get(user_hash)
        if not isinstance(bucket, dict):
            return []
        return [link for link in bucket.get("links") or [] if isinstance(link, dict)]

    def insert(
        self, user_hash: str, username: str | None, link: dict, reject_duplicate: bool
    ) -> dict:
        def mutate(document: dict) -> dict:
            bucket = self._bucket(document, user_hash, username)
            links = bucket["links"]
            if reject_duplicate and _has_url(links, link["url"]):
                raise DuplicateLinkError()
            record = dict(link, id=self._next_id(links))
            links.insert(0, record)
            bucket["lastUpdated"] = utcnow_iso()
            return copy.deepcopy(record)

        return self.store.update(LINKS_DOCUMENT, mutate)

    def delete(self, user_hash: str, link_id: str) -> None:
        def mutate(document: dict) -> None:
            bucket = document.get(user_hash)
            if not isinstance(bucket, dict):
                raise LinkNotFoundError()
            links = bucket.get("links") or []
            _find_link(links, link_id)
            bucket["links"] = [link for link in links if str(link.get("id")) != link_id]
            bucket["lastUpdated"] = utcnow_iso()

        self.store.update(LINKS_DOCUMENT, mutate)

    def update(
        self, user_hash: str, link_id: str, fields: dict, reject_duplicate: bool = False
    ) -> dict:
        def mutate(document: dict) -> dict:
            bucket = document.get(user_hash)
            if not isinstance(bucket, dict):
                raise LinkNotFoundError()
            links = bucket.get("links") or []
            link = _find_link(links, link_id)
            if reject_duplicate and "url" in fields and _has_url(links, fields["url"], link_id):
                raise DuplicateLinkError()
            link.update(fields)
            bucket["lastUpdated"] = utcnow_iso()
            return copy.deepcopy(link)

        return self.store.update(LINKS_DOCUMENT, mutate)


_COLUMNS = {
    "url": "url",
    "title": "title",
    "category": "category",
    "domain": "domain",
    "isRead": "is_read",
    "isFavorite": "is_favorite",
}


class SqlLinkRepository:
    """One row per link; mutations never touch another user's rows."""

    @staticmethod
    def _commit() -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc

    @staticmethod
    def _get(user_hash: str, link_id: str) -> Link:
        try:
            numeric_id = int(link_id)
        except (TypeError, ValueError):
            raise LinkNotFoundError() from None
        try:
            link = Link.query.filter_by(id=numeric_id, user_hash=user_hash).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc
        if not link:
            raise LinkNotFoundError()
        return link

    @staticmethod
    def _url_taken(user_hash: str, url: str, skip_id: int | None = None) -> bool:
        query = Link.query.filter_by(user_hash=user_hash, normalized_url=normalize_url(url))
        if skip_id is not None:
            query = query.filter(Link.id != skip_id)
        try:
            return query.first() is not None
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc

    def list(self, user_hash: str) -> list[dict]:
        try:
            rows = (
                Link.query.filter_by(user_hash=user_hash)
                .order_by(Link.timestamp.desc(), Link.id.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc
        return [row.as_dict() for row in rows]

    def insert(
        self, user_hash: str, username: str | None, link: dict, reject_duplicate: bool
    ) -> dict:
        if reject_duplicate and self._url_taken(user_hash, link["url"]):
            raise DuplicateLinkError()
        row = Link(
            user_hash=user_hash,
            url=link["url"],
            normalized_url=normalize_url(link["url"]),
            title=link["title"],
            category=link["category"],
            domain=link.get("domain"),
            is_read=bool(link.get("isRead")),
            is_favorite=bool(link.get("isFavorite")),
            date_added=parse_timestamp(link.get("dateAdded")) or utcnow(),
            timestamp=parse_timestamp(link.get("timestamp")) or utcnow(),
        )
        db.session.add(row)
        self._commit()
        return row.as_dict()

    def delete(self, user_hash: str, link_id: str) -> None:
        row = self._get(user_hash, link_id)
        db.session.delete(row)
        self._commit()

    def update(
        self, user_hash: str, link_id: str, fields: dict, reject_duplicate: bool = False
    ) -> dict:
        row = self._get(user_hash, link_id)
        if reject_duplicate and "url" in fields and self._url_taken(user_hash, fields["url"], row.id):
            raise DuplicateLinkError()
        for key, column in _COLUMNS.items():
            if key not in fields:
                continue
            value = fields[key]
            if column in {"is_read", "is_favorite"}:
                value = bool(value)
            setattr(row, column, value)
        if "url" in fields:
            row.normalized_url = normalize_url(fields["url"])
        if "updatedAt" in fields:
            row.updated_at = parse_timestamp(fields["updatedAt"])
        self._commit()
        return row.as_dict()


class LinkService:
    def __init__(
        self,
        repository,
        categories=DEFAULT_CATEGORIES,
        allow_duplicates: bool = False,
        title_fetcher=None,
    ):
        self.repository = repository
        self._categories = tuple(categories) or DEFAULT_CATEGORIES
        self.allow_duplicates = allow_duplicates
        self.title_fetcher = title_fetcher

    def categories(self) -> list[str]:
        return list(self._categories)

    def _category(self, category) -> str:
        if category is None or not str(category).strip():
            return DEFAULT_CATEGORY if DEFAULT_CATEGORY in self._categories else self._categories[0]
        wanted = str(category).strip()
        for known in self._categories:
            if known.lower() == wanted.lower():
                return known
        raise ValidationError("Invalid category")

    @staticmethod
    def _url(url) -> str:
        url = (url or "").strip() if isinstance(url, str) else url
        if not url:
            raise ValidationError("URL is required")
        if not is_valid_url(url):
            raise InvalidUrlError()
        return url

    def list_links(self, user_hash: str) -> list[dict]:
        return sort_newest_first(self.repository.list(user_hash))

    def add_link(
        self,
        user_hash: str,
        username: str | None,
        url,
        title: str | None = None,
        category: str | None = None,
    ) -> dict:
        url = self._url(url)
        category = self._category(category)
        title = (title or "").strip()
        if not title and self.title_fetcher:
            title = self.title_fetcher(url) or ""
        now = utcnow_iso()
        link = {
            "url": url,
            "title": title or title_from_url(url),
            "category": category,
            "domain": domain_from_url(url),
            "dateAdded": now,
            "timestamp": now,
            "isRead": 0,
            "isFavorite": 0,
        }
        return self.repository.insert(
            user_hash, username, link, reject_duplicate=not self.allow_duplicates
        )

    def remove_link(self, user_hash: str, link_id) -> None:
        self.repository.delete(user_hash, str(link_id))

    def set_read_state(self, user_hash: str, link_id, is_read) -> dict:
        return self.repository.update(user_hash, str(link_id), {"isRead": to_flag(is_read)})

    def set_favorite(self, user_hash: str, link_id, is_favorite) -> dict:
        return self.repository.update(
            user_hash, str(link_id), {"isFavorite": to_flag(is_favorite)}
        )

    def update_link(
        self,
        user_hash: str,
        link_id,
        url=None,
        title: str | None = None,
        category: str | None = None,
    ) -> dict:
        fields: dict = {}
        if url is not None:
            fields["url"] = self._url(url)
            fields["domain"] = domain_from_url(fields["url"])
        if title is not None and title.strip():
            fields["title"] = title.strip()
        if category is not None:
            fields["category"] = self._category(category)
        if not fields:
            raise ValidationError("Nothing to update")
        fields["updatedAt"] = utcnow_iso()
        return self.repository.update(
            user_hash,
            str(link_id),
            fields,
            reject_duplicate=not self.allow_duplicates,
        )
