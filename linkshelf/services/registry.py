from __future__ import annotations

from dataclasses import dataclass
from functools import partial

from flask import Flask, current_app

from linkshelf.services.content import fetch_title
from linkshelf.services.credentials import (
    CredentialService,
    DocumentCredentialRepository,
    SqlCredentialRepository,
)
from linkshelf.services.documents import (
    CREDENTIALS_DOCUMENT,
    LINKS_DOCUMENT,
    DocumentStore,
    JsonBinDocumentStore,
    MemoryDocumentStore,
)
from linkshelf.services.links import (
    DocumentLinkRepository,
    LinkService,
    SqlLinkRepository,
)
from linkshelf.services.passwords import PasswordHasher

EXTENSION_KEY = "linkshelf"

STORE_BACKEND_SQL = "sql"
STORE_BACKEND_JSONBIN = "jsonbin"
STORE_BACKEND_MEMORY = "memory"


@dataclass
class Services:
    backend: str
    credentials: CredentialService
    links: LinkService
    document_store: DocumentStore | None = None


def build_document_store(app: Flask, backend: str) -> DocumentStore:
    options = {
        "conflict_retries": app.config["STORE_CONFLICT_RETRIES"],
        "logger": app.logger,
    }
    if backend == STORE_BACKEND_MEMORY:
        return MemoryDocumentStore(**options)
    if backend == STORE_BACKEND_JSONBIN:
        return JsonBinDocumentStore(
            base_url=app.config["JSONBIN_BASE_URL"],
            api_key=app.config["JSONBIN_API_KEY"],
            bins={
                LINKS_DOCUMENT: app.config["LINKS_BIN_ID"],
                CREDENTIALS_DOCUMENT: app.config["AUTH_BIN_ID"],
            },
            timeout=app.config["STORE_TIMEOUT"],
            **options,
        )
    raise ValueError(f"Unknown document store backend {backend!r}")


def init_services(app: Flask, document_store: DocumentStore | None = None) -> Services:
    backend = app.config["STORE_BACKEND"]
    hasher = PasswordHasher(
        bcrypt_rounds=app.config["BCRYPT_ROUNDS"],
        sha256_salt=app.config["SHA256_PASSWORD_SALT"],
    )

    if backend == STORE_BACKEND_SQL:
        store = None
        credential_repository = SqlCredentialRepository()
        link_repository = SqlLinkRepository()
    else:
        store = document_store or build_document_store(app, backend)
        credential_repository = DocumentCredentialRepository(store)
        link_repository = DocumentLinkRepository(store)

    title_fetcher = None
    if app.config["FETCH_TITLES"]:
        title_fetcher = partial(
            fetch_title,
            timeout=app.config["CONTENT_FETCH_TIMEOUT"],
            max_bytes=app.config["CONTENT_MAX_BYTES"],
        )

    services = Services(
        backend=backend,
        credentials=CredentialService(credential_repository, hasher, logger=app.logger),
        links=LinkService(
            link_repository,
            categories=app.config["LINK_CATEGORIES"],
            allow_duplicates=app.config["ALLOW_DUPLICATE_URLS"],
            title_fetcher=title_fetcher,
        ),
        document_store=store,
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
