"""Copy users and links out of the shared JSON documents into SQL tables."""

from __future__ import annotations

from linkshelf.extensions import db
from linkshelf.models import Link, User, utcnow
from linkshelf.services.common import (
    domain_from_url,
    is_valid_url,
    normalize_url,
    parse_timestamp,
    title_from_url,
    to_flag,
)
from linkshelf.services.credentials import Credential, generate_user_hash
from linkshelf.services.documents import (
    CREDENTIALS_DOCUMENT,
    LINKS_DOCUMENT,
    DocumentStore,
)
from linkshelf.services.links import DEFAULT_CATEGORY

LEGACY_BUCKET_PREFIX = "links_"


def _iter_buckets(links_document: dict):
    for key, value in links_document.items():
        # Early documents stored a bare list under "links_<userHash>".
        if key.startswith(LEGACY_BUCKET_PREFIX) and isinstance(value, list):
            yield key[len(LEGACY_BUCKET_PREFIX) :], value
        elif isinstance(value, dict) and isinstance(value.get("links"), list):
            yield key, value["links"]


def _migrate_users(credentials_document: dict, counts: dict) -> dict[str, str]:
    hash_map: dict[str, str] = {}
    for username, record in credentials_document.items():
        if not isinstance(record, dict):
            continue
        credential = Credential.from_record(username, record)
        if not credential.password_hash:
            counts["users_skipped"] += 1
            continue

        existing = User.query.filter_by(username=username).first()
        if existing:
            counts["users_skipped"] += 1
            if credential.user_hash:
                hash_map[credential.user_hash] = existing.user_hash
            continue

        user_hash = credential.user_hash or generate_user_hash(username, credential.created_at)
        db.session.add(
            User(
                username=username,
                password_hash=credential.password_hash,
                hash_version=int(credential.hash_version),
                user_hash=user_hash,
                created_at=parse_timestamp(credential.created_at) or utcnow(),
                last_login=parse_timestamp(credential.last_login),
            )
        )
        hash_map[user_hash] = user_hash
        counts["users_migrated"] += 1
    db.session.flush()
    return hash_map


def _migrate_links(links_document: dict, hash_map: dict[str, str], counts: dict) -> None:
    for source_hash, links in _iter_buckets(links_document):
        target_hash = hash_map.get(source_hash)
        if not target_hash:
            counts["orphan_buckets"] += 1
            continue

        seen = {
            row.normalized_url
            for row in Link.query.filter_by(user_hash=target_hash).all()
        }
        for item in links:
            url = (item.get("url") or "").strip() if isinstance(item, dict) else ""
            if not is_valid_url(url):
                counts["links_skipped"] += 1
                continue
            normalized = normalize_url(url)
            if normalized in seen:
                counts["links_skipped"] += 1
                continue
            seen.add(normalized)

            added = parse_timestamp(item.get("dateAdded") or item.get("timestamp")) or utcnow()
            db.session.add(
                Link(
                    user_hash=target_hash,
                    url=url,
                    normalized_url=normalized,
                    title=(item.get("title") or "").strip() or title_from_url(url),
                    category=item.get("category") or DEFAULT_CATEGORY,
                    domain=item.get("domain") or domain_from_url(url),
                    is_read=bool(to_flag(item.get("isRead"))),
                    is_favorite=bool(to_flag(item.get("isFavorite"))),
                    date_added=added,
                    timestamp=parse_timestamp(item.get("timestamp")) or added,
                )
            )
            counts["links_migrated"] += 1


def import_documents(store: DocumentStore) -> dict:
    credentials_document, _ = store.read(CREDENTIALS_DOCUMENT)
    links_document, _ = store.read(LINKS_DOCUMENT)

    counts = {
        "users_migrated": 0,
        "users_skipped": 0,
        "links_migrated": 0,
        "links_skipped": 0,
        "orphan_buckets": 0,
    }
    try:
        hash_map = _migrate_users(credentials_document, counts)
        _migrate_links(links_document, hash_map, counts)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return counts
