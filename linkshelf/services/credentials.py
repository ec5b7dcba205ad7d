from __future__ import annotations

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from linkshelf.errors import (
    DuplicateUserError,
    InvalidPasswordError,
    LinkShelfError,
    ServiceUnavailableError,
    UserNotFoundError,
    ValidationError,
)
from linkshelf.extensions import db
from linkshelf.models import User
from linkshelf.services.common import (
    is_valid_password,
    is_valid_username,
    parse_timestamp,
    to_iso,
    utcnow_iso,
)
from linkshelf.services.documents import (
    CREDENTIALS_DOCUMENT,
    STORE_STATUS_CONNECTED,
    STORE_STATUS_ERROR,
    DocumentStore,
)
from linkshelf.services.passwords import LEGACY_VERSION, PasswordHasher

USER_HASH_LENGTH = 16
USER_HASH_SALT = "linkshelf_user_salt"

USERNAME_RULES = "Username must be 3-30 characters, alphanumeric, dash, or underscore only"
PASSWORD_RULES = "Password must be at least 6 characters"


@dataclass
class Credential:
    username: str
    password_hash: str
    hash_version: int
    user_hash: str | None
    created_at: str | None
    last_login: str | None = None

    @classmethod
    def from_record(cls, username: str, record: dict) -> "Credential":
        return cls(
            username=username,
            password_hash=record.get("passwordHash") or record.get("password") or "",
            hash_version=record.get("hashVersion") or LEGACY_VERSION,
            user_hash=record.get("userHash"),
            created_at=record.get("createdAt"),
            last_login=record.get("lastLogin"),
        )

    def to_record(self) -> dict:
        return {
            "passwordHash": self.password_hash,
            "hashVersion": self.hash_version,
            "userHash": self.user_hash,
            "createdAt": self.created_at,
            "lastLogin": self.last_login,
        }


@dataclass
class AuthResult:
    username: str
    user_hash: str
    upgraded: bool = False


def generate_user_hash(username: str, created_at: str | None) -> str:
    entropy = "|".join(
        [
            username,
            created_at or "",
            str(time.time_ns()),
            secrets.token_hex(16),
            USER_HASH_SALT,
        ]
    )
    return hashlib.sha256(entropy.encode("utf-8")).hexdigest()[:USER_HASH_LENGTH]


class DocumentCredentialRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, username: str) -> Credential | None:
        document, _ = self.store.read(CREDENTIALS_DOCUMENT)
        record = document.get(username)
        if not isinstance(record, dict):
            return None
        return Credential.from_record(username, record)

    def create(self, credential: Credential) -> None:
        def mutate(document: dict) -> None:
            if credential.username in document:
                raise DuplicateUserError()
            document[credential.username] = credential.to_record()

        self.store.update(CREDENTIALS_DOCUMENT, mutate)

    @staticmethod
    def _record(document: dict, username: str) -> dict:
        record = document.get(username)
        if not isinstance(record, dict):
            raise UserNotFoundError()
        return record

    def touch_login(self, username: str, last_login: str, user_hash: str | None = None) -> str:
        def mutate(document: dict) -> str:
            record = self._record(document, username)
            record["lastLogin"] = last_login
            if user_hash and not record.get("userHash"):
                record["userHash"] = user_hash
            return record.get("userHash")

        return self.store.update(CREDENTIALS_DOCUMENT, mutate)

    def replace_password(
        self,
        username: str,
        password_hash: str,
        hash_version: int,
        expected_hash: str | None = None,
        user_hash: str | None = None,
    ) -> str | None:
        """Swap the stored hash; None if it no longer matches ``expected_hash``."""

        def mutate(document: dict) -> str | None:
            record = self._record(document, username)
            stored = Credential.from_record(username, record)
            if expected_hash is not None and stored.password_hash != expected_hash:
                return None
            record.pop("password", None)
            record["passwordHash"] = password_hash
            record["hashVersion"] = hash_version
            if user_hash and not record.get("userHash"):
                record["userHash"] = user_hash
            return record.get("userHash")

        return self.store.update(CREDENTIALS_DOCUMENT, mutate)

    def status(self) -> str:
        return self.store.status()


class SqlCredentialRepository:
    def get(self, username: str) -> Credential | None:
        try:
            user = User.query.filter_by(username=username).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc
        if not user:
            return None
        return Credential(
            username=user.username,
            password_hash=user.password_hash,
            hash_version=user.hash_version,
            user_hash=user.user_hash,
            created_at=to_iso(user.created_at),
            last_login=to_iso(user.last_login) if user.last_login else None,
        )

    def create(self, credential: Credential) -> None:
        user = User(
            username=credential.username,
            password_hash=credential.password_hash,
            hash_version=credential.hash_version,
            user_hash=credential.user_hash,
            created_at=parse_timestamp(credential.created_at),
            last_login=parse_timestamp(credential.last_login),
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateUserError() from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc

    def touch_login(self, username: str, last_login: str, user_hash: str | None = None) -> str:
        try:
            user = User.query.filter_by(username=username).first()
            if not user:
                raise UserNotFoundError()
            user.last_login = parse_timestamp(last_login)
            if user_hash and not user.user_hash:
                user.user_hash = user_hash
            db.session.commit()
            return user.user_hash
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc

    def replace_password(
        self,
        username: str,
        password_hash: str,
        hash_version: int,
        expected_hash: str | None = None,
        user_hash: str | None = None,
    ) -> str | None:
        try:
            query = User.query.filter_by(username=username)
            if expected_hash is not None:
                # Matches nothing once the hash has been replaced elsewhere.
                query = query.filter_by(password_hash=expected_hash)
            changed = query.update(
                {"password_hash": password_hash, "hash_version": hash_version},
                synchronize_session=False,
            )
            if not changed:
                db.session.rollback()
                if expected_hash is None:
                    raise UserNotFoundError()
                return None
            db.session.commit()
            user = User.query.filter_by(username=username).first()
            if user_hash and not user.user_hash:
                user.user_hash = user_hash
                db.session.commit()
            return user.user_hash
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise ServiceUnavailableError() from exc

    def status(self) -> str:
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            db.session.rollback()
            return STORE_STATUS_ERROR
        return STORE_STATUS_CONNECTED


class CredentialService:
    def __init__(self, repository, hasher: PasswordHasher, logger=None):
        self.repository = repository
        self.hasher = hasher
        self.logger = logger or logging.getLogger(__name__)

    def exists(self, username: str) -> bool:
        return self.repository.get(username) is not None

    def get_user_hash(self, username: str) -> str:
        credential = self.repository.get(username)
        if not credential or not credential.user_hash:
            raise UserNotFoundError()
        return credential.user_hash

    def register(self, username: str, password: str) -> Credential:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password required")
        if not is_valid_username(username):
            raise ValidationError(USERNAME_RULES)
        if not is_valid_password(password):
            raise ValidationError(PASSWORD_RULES)
        if self.repository.get(username) is not None:
            raise DuplicateUserError()

        password_hash, version = self.hasher.hash(password)
        now = utcnow_iso()
        credential = Credential(
            username=username,
            password_hash=password_hash,
            hash_version=version,
            user_hash=generate_user_hash(username, now),
            created_at=now,
            last_login=now,
        )
        self.repository.create(credential)
        self.logger.info("Registered user %s", username)
        return credential

    def authenticate(self, username: str, password: str) -> AuthResult:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password required")

        credential = self.repository.get(username)
        if credential is None:
            raise UserNotFoundError()
        if not self.hasher.verify(password, credential.password_hash, credential.hash_version):
            raise InvalidPasswordError()

        upgraded = False
        if self.hasher.needs_upgrade(credential.hash_version):
            upgraded = self._upgrade_hash(credential, password)

        # Pre-isolation records never had a userHash; pin one now. Short
        # hashes stay as they are since links are already stored under them.
        new_user_hash = None
        if not credential.user_hash:
            new_user_hash = generate_user_hash(username, credential.created_at)

        try:
            user_hash = self.repository.touch_login(
                username, utcnow_iso(), user_hash=new_user_hash
            )
        except LinkShelfError as exc:
            if new_user_hash:
                raise ServiceUnavailableError("Could not assign a storage key") from exc
            self.logger.warning("Could not record login for %s: %s", username, exc)
            user_hash = credential.user_hash

        return AuthResult(username=username, user_hash=user_hash, upgraded=upgraded)

    def _upgrade_hash(self, credential: Credential, password: str) -> bool:
        new_hash, new_version = self.hasher.hash(password)
        try:
            replaced = self.repository.replace_password(
                credential.username,
                new_hash,
                new_version,
                expected_hash=credential.password_hash,
            )
        except LinkShelfError as exc:
            self.logger.warning(
                "Could not upgrade password hash for %s: %s", credential.username, exc
            )
            return False
        if replaced is None:
            self.logger.info(
                "Password for %s changed during login, hash upgrade skipped",
                credential.username,
            )
            return False
        self.logger.info(
            "Upgraded password hash for %s to %s",
            credential.username,
            self.hasher.preferred.name,
        )
        return True

    def reset_password(self, username: str, new_password: str) -> Credential:
        username = (username or "").strip()
        if not username or not new_password:
            raise ValidationError("Username and new password required")
        if not is_valid_password(new_password):
            raise ValidationError(PASSWORD_RULES)

        credential = self.repository.get(username)
        if credential is None:
            raise UserNotFoundError()
        credential.password_hash, credential.hash_version = self.hasher.hash(new_password)
        credential.user_hash = self.repository.replace_password(
            username,
            credential.password_hash,
            credential.hash_version,
            user_hash=credential.user_hash
            or generate_user_hash(username, credential.created_at),
        )
        self.logger.info("Password reset for %s", username)
        return credential

    def status(self) -> str:
        return self.repository.status()
