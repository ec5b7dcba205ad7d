"""Password hashing schemes.

Stored credentials carry a ``hashVersion`` tag that selects the verifier:

* 1 - legacy 32-bit string hash (no salt), from the first client-only release
* 2 - SHA-256 over password + fixed salt
* 3 - bcrypt (preferred)

Records without a tag are treated as legacy.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Callable

import bcrypt

LEGACY_VERSION = 1
SHA256_VERSION = 2
BCRYPT_VERSION = 3

DEFAULT_SHA256_SALT = "linkshelf_salt_2024"
BCRYPT_MAX_BYTES = 72


@dataclass(frozen=True)
class PasswordScheme:
    version: int
    name: str
    hash: Callable[[str], str]
    verify: Callable[[str, str], bool]
    is_preferred: bool = False


def legacy_hash(password: str) -> str:
    value = 0
    data = password.encode("utf-16-le")
    for offset in range(0, len(data), 2):
        unit = int.from_bytes(data[offset : offset + 2], "little")
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return str(value)


def _constant_time_equal(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def _bcrypt_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    def __init__(self, bcrypt_rounds: int = 12, sha256_salt: str = DEFAULT_SHA256_SALT):
        self.bcrypt_rounds = bcrypt_rounds
        self.sha256_salt = sha256_salt
        schemes = (
            PasswordScheme(
                LEGACY_VERSION,
                "legacy",
                legacy_hash,
                lambda password, stored: _constant_time_equal(
                    legacy_hash(password), stored
                ),
            ),
            PasswordScheme(
                SHA256_VERSION,
                "sha256",
                self._sha256_hash,
                lambda password, stored: _constant_time_equal(
                    self._sha256_hash(password), stored
                ),
            ),
            PasswordScheme(
                BCRYPT_VERSION,
                "bcrypt",
                self._bcrypt_hash,
                self._bcrypt_verify,
                is_preferred=True,
            ),
        )
        self.schemes = {scheme.version: scheme for scheme in schemes}

    @property
    def preferred(self) -> PasswordScheme:
        return next(scheme for scheme in self.schemes.values() if scheme.is_preferred)

    def scheme_for(self, version) -> PasswordScheme | None:
        if version in (None, ""):
            version = LEGACY_VERSION
        try:
            return self.schemes.get(int(version))
        except (TypeError, ValueError):
            return None

    def hash(self, password: str) -> tuple[str, int]:
        scheme = self.preferred
        return scheme.hash(password), scheme.version

    def verify(self, password: str, stored_hash: str | None, version) -> bool:
        scheme = self.scheme_for(version)
        if scheme is None or not stored_hash:
            return False
        return scheme.verify(password, stored_hash)

    def needs_upgrade(self, version) -> bool:
        scheme = self.scheme_for(version)
        return scheme is None or not scheme.is_preferred

    def _sha256_hash(self, password: str) -> str:
        return hashlib.sha256(
            (password + self.sha256_salt).encode("utf-8")
        ).hexdigest()

    def _bcrypt_hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(_bcrypt_bytes(password), salt).decode("utf-8")

    @staticmethod
    def _bcrypt_verify(password: str, stored: str) -> bool:
        try:
            return bcrypt.checkpw(_bcrypt_bytes(password), stored.encode("utf-8"))
        except ValueError:
            return False
