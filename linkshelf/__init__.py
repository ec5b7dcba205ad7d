from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from linkshelf.api import api_bp
from linkshelf.auth import auth_bp
from linkshelf.config import Config
from linkshelf.errors import LinkShelfError
from linkshelf.extensions import db, init_limiter, login_manager, migrate
from linkshelf.services.registry import (
    STORE_BACKEND_JSONBIN,
    STORE_BACKEND_SQL,
    build_document_store,
    init_services,
)
from linkshelf.store_migration import import_documents


def create_app(config_object=Config, document_store=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    init_services(app, document_store=document_store)

    init_limiter(app, auth_bp, api_bp)

    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)

    @app.errorhandler(LinkShelfError)
    def handle_linkshelf_error(exc):
        return jsonify({"success": False, "error": exc.message}), exc.status_code

    @app.errorhandler(429)
    def handle_rate_limited(exc):
        return (
            jsonify({"success": False, "error": "Too many requests, please try again later."}),
            429,
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({"success": False, "error": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"success": False, "error": "Internal server error"}), 500

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized LinkShelf database.")

    @app.cli.command("import-documents")
    def import_documents_command():
        db.create_all()
        store = document_store or build_document_store(app, STORE_BACKEND_JSONBIN)
        try:
            counts = import_documents(store)
        finally:
            store.close()
        print(
            "Imported {users_migrated} users ({users_skipped} skipped), "
            "{links_migrated} links ({links_skipped} skipped), "
            "{orphan_buckets} buckets without a user.".format(**counts)
        )

    if app.config["STORE_BACKEND"] == STORE_BACKEND_SQL:
        with app.app_context():
            db.create_all()

    return app
