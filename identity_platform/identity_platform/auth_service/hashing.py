"""
Credential hashing.

Passwords are hashed with scrypt through passlib. The stored value is a
modular-crypt string that carries its own algorithm, cost and salt, so the
cost can be re-tuned (or the scheme replaced) without breaking existing
hashes. pbkdf2_sha256 hashes from earlier deployments still verify and are
reported as needing an upgrade.
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union
import logging
import threading

from passlib.context import CryptContext

from .exceptions import EmptyPassword

logger = logging.getLogger(__name__)

DEFAULT_SCHEME = "scrypt"
LEGACY_SCHEMES = ("pbkdf2_sha256",)


@dataclass(frozen=True)
class CredentialHash:
    algorithm: str
    cost: int
    salt: bytes
    digest: bytes
    encoded: str

    def __str__(self) -> str:
        return self.encoded

    def __repr__(self) -> str:
        return f"CredentialHash(algorithm={self.algorithm!r}, cost={self.cost})"


StoredHash = Union[CredentialHash, str]


def _encoded(stored: StoredHash) -> str:
    return stored.encoded if isinstance(stored, CredentialHash) else stored


class CredentialHasher:
    """
    Salted, memory-hard password hashing with bounded concurrency.

    At most ``max_concurrency`` hash or verify computations run at once;
    extra callers block until a slot frees up.
    """

    def __init__(self, rounds: int = 16, max_concurrency: int = 4):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._context = CryptContext(
            schemes=[DEFAULT_SCHEME, *LEGACY_SCHEMES],
            deprecated="auto",
            scrypt__default_rounds=rounds,
            scrypt__min_rounds=rounds,
        )
        self._slots = threading.BoundedSemaphore(max_concurrency)

    def hash(self, plaintext: str) -> CredentialHash:
        if not plaintext:
            raise EmptyPassword("password must not be empty")
        with self._slots:
            encoded = self._context.hash(plaintext)
        return self.describe(encoded)

    def verify(self, plaintext: str, stored: StoredHash) -> bool:
        """
        Return True when plaintext matches stored.

        Malformed or unrecognised stored hashes return False instead of
        raising, so callers never learn anything about the stored format.
        """
        matched, _ = self.verify_and_update(plaintext, stored)
        return matched

    def verify_and_update(self, plaintext: str, stored: StoredHash) -> Tuple[bool, Optional[CredentialHash]]:
        """
        Verify plaintext and, if the stored hash is outdated, rehash it.

        Returns:
            Tuple of (matched, replacement hash or None)
        """
        if not plaintext or not stored:
            return False, None
        try:
            with self._slots:
                matched, replacement = self._context.verify_and_update(plaintext, _encoded(stored))
        except (ValueError, TypeError):
            logger.warning("Rejected unverifiable stored credential hash")
            return False, None
        if matched and replacement:
            return True, self.describe(replacement)
        return matched, None

    def needs_rehash(self, stored: StoredHash) -> bool:
        try:
            return self._context.needs_update(_encoded(stored))
        except (ValueError, TypeError):
            return True

    def dummy_verify(self) -> None:
        """Spend as long as a real verify; used when there is nothing to verify against."""
        with self._slots:
            self._context.dummy_verify()

    def describe(self, encoded: str) -> CredentialHash:
        """
        Parse a stored hash into its parts.

        Raises:
            ValueError: If the hash is malformed or uses an unknown scheme
        """
        handler = self._context.identify(encoded, resolve=True, required=False)
        if handler is None:
            raise ValueError("unrecognised credential hash format")
        record = handler.from_string(encoded)
        return CredentialHash(
            algorithm=handler.name,
            cost=record.rounds,
            salt=record.salt,
            digest=record.checksum,
            encoded=encoded,
        )
