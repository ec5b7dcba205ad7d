import os
from pathlib import Path

from linkshelf.services.links import DEFAULT_CATEGORIES
from linkshelf.services.passwords import DEFAULT_SHA256_SALT


BASE_DIR = Path(__file__).resolve().parent.parent


def _categories_from_env():
    raw = os.environ.get("LINK_CATEGORIES", "")
    names = [name.strip() for name in raw.split(",") if name.strip()]
    return tuple(names) or DEFAULT_CATEGORIES


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    ENVIRONMENT = os.environ.get("ENVIRONMENT", os.environ.get("FLASK_ENV", "production"))
    VERSION = "1.0.0"

    STORE_BACKEND = os.environ.get("STORE_BACKEND", "sql").strip().lower()
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'linkshelf.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JSONBIN_BASE_URL = os.environ.get("JSONBIN_BASE_URL", "https://api.jsonbin.io/v3/b")
    JSONBIN_API_KEY = os.environ.get("JSONBIN_API_KEY")
    LINKS_BIN_ID = os.environ.get("LINKS_BIN_ID")
    AUTH_BIN_ID = os.environ.get("AUTH_BIN_ID")
    STORE_TIMEOUT = float(os.environ.get("STORE_TIMEOUT", "10"))
    STORE_CONFLICT_RETRIES = int(os.environ.get("STORE_CONFLICT_RETRIES", "3"))

    TOKEN_MAX_AGE_SECONDS = int(os.environ.get("TOKEN_MAX_AGE_SECONDS", "604800"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    SHA256_PASSWORD_SALT = os.environ.get("SHA256_PASSWORD_SALT", DEFAULT_SHA256_SALT)

    ALLOW_DUPLICATE_URLS = os.environ.get("ALLOW_DUPLICATE_URLS", "0") == "1"
    LINK_CATEGORIES = _categories_from_env()
    FETCH_TITLES = os.environ.get("FETCH_TITLES", "0") == "1"
    CONTENT_FETCH_TIMEOUT = float(os.environ.get("CONTENT_FETCH_TIMEOUT", "5"))
    CONTENT_MAX_BYTES = int(os.environ.get("CONTENT_MAX_BYTES", "2500000"))

    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", str(10 * 1024 * 1024)))
    RATELIMIT_ENABLED = os.environ.get("RATELIMIT_ENABLED", "1") == "1"
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    API_RATE_LIMIT = os.environ.get("API_RATE_LIMIT", "100 per 15 minutes")


class TestConfig(Config):
    TESTING = True
    ENVIRONMENT = "test"
    SECRET_KEY = "test-secret-key"
    STORE_BACKEND = "sql"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    ALLOW_DUPLICATE_URLS = False
    LINK_CATEGORIES = DEFAULT_CATEGORIES
    FETCH_TITLES = False
    RATELIMIT_ENABLED = False


class MemoryStoreTestConfig(TestConfig):
    STORE_BACKEND = "memory"
