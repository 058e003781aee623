"""
OauthGate Auth - Secure Credentials

Identity + secret holder used at the authentication entry point.

The secret lives in a mutable ``bytearray`` so it can be zeroed once the
request completes. It is never converted to ``str`` by this class and is
rendered as ``***`` in every textual representation.
"""

from __future__ import annotations

import hashlib
import hmac

REDACTED = "***"


class SecureCredential:
    """
    Username/secret pair owned by one request pipeline.

    Equality and hashing compare the full secret content, so two credentials
    with the same identity and secret are indistinguishable.

    Usage:
        ```python
        with SecureCredential("admin", bytearray(b"s3cret")) as cred:
            result = await pipeline.authenticate(cred)
        # secret bytes are zeroed here
        ```
    """

    __slots__ = ("_identity", "_secret", "_wiped")

    def __init__(self, identity: str, secret: bytes | bytearray | str | None):
        self._identity = identity
        if secret is None:
            self._secret = bytearray()
        elif isinstance(secret, str):
            self._secret = bytearray(secret.encode("utf-8"))
        else:
            self._secret = bytearray(secret)
        self._wiped = False

    @property
    def identity(self) -> str:
        return self._identity

    def secret_bytes(self) -> bytearray:
        """
        Return the live secret buffer (not a copy).

        Callers must not retain it beyond the current request.
        """
        return self._secret

    def is_blank(self) -> bool:
        """True when either the identity or the secret is empty."""
        return not self._identity or not self._secret

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Zero the secret buffer in place."""
        for i in range(len(self._secret)):
            self._secret[i] = 0
        self._wiped = True

    def __enter__(self) -> SecureCredential:
        return self

    def __exit__(self, *exc_info) -> None:
        self.wipe()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecureCredential):
            return NotImplemented
        # Evaluate both comparisons before combining them
        same_identity = self._identity == other._identity
        same_secret = hmac.compare_digest(self._secret, other._secret)
        return same_identity & same_secret

    def __hash__(self) -> int:
        digest = hashlib.sha256(self._secret).digest()
        return hash((self._identity, digest))

    def __repr__(self) -> str:
        return f"SecureCredential(identity={self._identity!r}, secret={REDACTED!r})"

    __str__ = __repr__
