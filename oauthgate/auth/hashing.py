"""
OauthGate Auth - Password Matching

Algorithm-agnostic contract for encoding a raw secret and matching it
against a stored encoded secret, with pluggable strategies:

- Argon2Matcher: Argon2id via argon2-cffi (default)
- Pbkdf2Matcher: PBKDF2-HMAC-SHA256
- PasslibMatcher: any passlib CryptContext (bcrypt, sha512_crypt, ...)
- DelegatingPasswordMatcher: picks the strategy from the encoded prefix

Raw secrets are accepted as bytes-like objects and never kept past the call.
Comparisons never exit early on the first differing byte.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
from typing import Protocol, runtime_checkable

from argon2 import PasswordHasher as Argon2PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from passlib.context import CryptContext

logger = logging.getLogger("oauthgate.auth.hashing")


def _as_bytes(raw: bytes | bytearray) -> bytes:
    """
    argon2-cffi and passlib only take ``bytes`` or ``str``. A mutable buffer
    is copied for the duration of one call; the copy is never stored.
    """
    return raw if isinstance(raw, bytes) else bytes(raw)


@runtime_checkable
class PasswordMatcher(Protocol):
    """Contract for encoding and matching secrets."""

    def encode(self, raw: bytes) -> str:
        """Return the encoded form of ``raw`` (algorithm, params, salt, hash)."""
        ...

    def matches(self, raw: bytes, encoded: str) -> bool:
        """True if ``raw`` matches ``encoded``."""
        ...


class Argon2Matcher:
    """
    Argon2id matcher.

    Argon2id is memory-hard and GPU-resistant.

    Security parameters:
    - time_cost=2, memory_cost=65536 (64MB), parallelism=4
    """

    prefix = "$argon2"

    def __init__(
        self,
        time_cost: int = 2,
        memory_cost: int = 65536,
        parallelism: int = 4,
        hash_len: int = 32,
        salt_len: int = 16,
    ):
        self.hasher = Argon2PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
        )

    def encode(self, raw: bytes) -> str:
        """
        Example output:
            $argon2id$v=19$m=65536,t=2,p=4$saltbase64$hashbase64
        """
        return self.hasher.hash(_as_bytes(raw))

    def matches(self, raw: bytes, encoded: str) -> bool:
        try:
            return self.hasher.verify(encoded, _as_bytes(raw))
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            logger.debug("Argon2 hash could not be verified")
            return False

    def check_needs_rehash(self, encoded: str) -> bool:
        """True if ``encoded`` was produced with different parameters."""
        try:
            return self.hasher.check_needs_rehash(encoded)
        except InvalidHashError:
            return True


class Pbkdf2Matcher:
    """
    PBKDF2-HMAC-SHA256 matcher.

    Encoded format: ``$pbkdf2_sha256$iterations$salt$hash`` (base64 parts).
    """

    prefix = "$pbkdf2_sha256$"

    def __init__(self, iterations: int = 600000, hash_len: int = 32, salt_len: int = 16):
        self.iterations = iterations
        self.hash_len = hash_len
        self.salt_len = salt_len

    def encode(self, raw: bytes) -> str:
        salt = secrets.token_bytes(self.salt_len)
        digest = hashlib.pbkdf2_hmac("sha256", raw, salt, self.iterations, dklen=self.hash_len)

        salt_b64 = base64.b64encode(salt).decode()
        hash_b64 = base64.b64encode(digest).decode()
        return f"$pbkdf2_sha256${self.iterations}${salt_b64}${hash_b64}"

    def matches(self, raw: bytes, encoded: str) -> bool:
        try:
            parts = encoded.split("$")
            if len(parts) != 5 or parts[1] != "pbkdf2_sha256":
                return False

            iterations = int(parts[2])
            salt = base64.b64decode(parts[3])
            stored = base64.b64decode(parts[4])
        except (ValueError, TypeError):
            return False
        if iterations < 1 or not stored:
            return False

        computed = hashlib.pbkdf2_hmac("sha256", raw, salt, iterations, dklen=len(stored))
        return hmac.compare_digest(computed, stored)


class PasslibMatcher:
    """
    Matcher backed by a passlib ``CryptContext``.

    Defaults to passlib's ``pbkdf2_sha256`` scheme; pass ``schemes`` to use
    others (the first scheme is used for encoding).
    """

    def __init__(self, schemes: list[str] | None = None, context: CryptContext | None = None):
        self.context = context or CryptContext(schemes=schemes or ["pbkdf2_sha256"])

    def encode(self, raw: bytes) -> str:
        return self.context.hash(_as_bytes(raw))

    def matches(self, raw: bytes, encoded: str) -> bool:
        try:
            return self.context.verify(_as_bytes(raw), encoded)
        except (ValueError, TypeError):
            return False

    def identifies(self, encoded: str) -> bool:
        """True if one of the context's schemes recognises ``encoded``."""
        try:
            return self.context.identify(encoded) is not None
        except (ValueError, TypeError):
            return False


class DelegatingPasswordMatcher:
    """
    Encodes with a default strategy and matches with whichever strategy
    produced the stored value.

    Unknown formats never match.
    """

    def __init__(
        self,
        default: PasswordMatcher | None = None,
        argon2: Argon2Matcher | None = None,
        pbkdf2: Pbkdf2Matcher | None = None,
        passlib: PasslibMatcher | None = None,
    ):
        self.argon2 = argon2 or Argon2Matcher()
        self.pbkdf2 = pbkdf2 or Pbkdf2Matcher()
        self.passlib = passlib
        self.default = default or self.argon2

    def encode(self, raw: bytes) -> str:
        return self.default.encode(raw)

    def _strategy_for(self, encoded: str) -> PasswordMatcher | None:
        if encoded.startswith(Argon2Matcher.prefix):
            return self.argon2
        if encoded.startswith(Pbkdf2Matcher.prefix):
            return self.pbkdf2
        if self.passlib is not None and self.passlib.identifies(encoded):
            return self.passlib
        return None

    def matches(self, raw: bytes, encoded: str) -> bool:
        if not encoded:
            return False
        strategy = self._strategy_for(encoded)
        if strategy is None:
            logger.warning("Stored secret has an unrecognised encoding")
            return False
        return strategy.matches(raw, encoded)


# ============================================================================
# Convenience
# ============================================================================

_default_matcher: PasswordMatcher | None = None


def get_password_matcher() -> PasswordMatcher:
    """Get default password matcher instance."""
    global _default_matcher

    if _default_matcher is None:
        _default_matcher = DelegatingPasswordMatcher()

    return _default_matcher
