from linkshelf import create_app
from linkshelf.config import TestConfig
from linkshelf.models import Link, User
from linkshelf.services.documents import (
    CREDENTIALS_DOCUMENT,
    LINKS_DOCUMENT,
    MemoryDocumentStore,
)
from linkshelf.services.passwords import LEGACY_VERSION, legacy_hash
from linkshelf.services.registry import get_services
from linkshelf.store_migration import import_documents


def _store():
    return MemoryDocumentStore(
        {
            CREDENTIALS_DOCUMENT: {
                "alice": {
                    "passwordHash": legacy_hash("hunter22"),
                    "hashVersion": LEGACY_VERSION,
                    "userHash": "aaaaaaaaaaaaaaaa",
                    "createdAt": "2024-01-02T03:04:05.000Z",
                },
                "broken": {"userHash": "bbbbbbbbbbbbbbbb"},
            },
            LINKS_DOCUMENT: {
                "aaaaaaaaaaaaaaaa": {
                    "username": "alice",
                    "links": [
                        {
                            "id": "1704164645000",
                            "url": "https://example.com",
                            "title": "Example",
                            "category": "Work",
                            "dateAdded": "2024-01-02T03:04:05.000Z",
                            "isRead": 1,
                        },
                        {"id": "1704164645001", "url": "https://example.com/"},
                        {"id": "1704164645002", "url": "not-a-url"},
                    ],
                },
                "links_cccccccccccccccc": [{"url": "https://orphan.example"}],
            },
        }
    )


def test_import_documents_copies_users_and_links(app):
    with app.app_context():
        counts = import_documents(_store())

        assert counts == {
            "users_migrated": 1,
            "users_skipped": 1,
            "links_migrated": 1,
            "links_skipped": 2,
            "orphan_buckets": 1,
        }
        user = User.query.filter_by(username="alice").one()
        assert user.user_hash == "aaaaaaaaaaaaaaaa"
        assert user.hash_version == LEGACY_VERSION
        link = Link.query.filter_by(user_hash=user.user_hash).one()
        assert link.title == "Example"
        assert link.category == "Work"
        assert link.is_read is True

        result = get_services().credentials.authenticate("alice", "hunter22")
        assert result.user_hash == "aaaaaaaaaaaaaaaa"
        assert result.upgraded is True


def test_import_documents_is_repeatable(app):
    with app.app_context():
        import_documents(_store())
        counts = import_documents(_store())

        assert counts["users_migrated"] == 0
        assert counts["links_migrated"] == 0
        assert User.query.count() == 1
        assert Link.query.count() == 1


def test_init_db_cli(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["init-db"])

    assert result.exit_code == 0
    assert "Initialized LinkShelf database" in result.output


def test_import_documents_cli():
    app = create_app(TestConfig, document_store=_store())

    result = app.test_cli_runner().invoke(args=["import-documents"])

    assert result.exit_code == 0
    assert "Imported 1 users (1 skipped), 1 links (2 skipped), 1 buckets without a user." in result.output
