"""
OauthGate Auth - Anti-forgery State

State values bind one authorization redirect to its callback. They are
generated from the OS CSPRNG, stored keyed by a per-attempt correlation id
(e.g. a session id) and consumed exactly once.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol


def generate_state() -> str:
    """Generate an unguessable, single-use state value."""
    return secrets.token_urlsafe(32)


def generate_correlation_id() -> str:
    """Generate a correlation id for callers without a session."""
    return f"att_{secrets.token_urlsafe(16)}"


def states_match(expected: str | None, received: str | None) -> bool:
    """Exact, constant-time comparison of state values."""
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


# ============================================================================
# PKCE
# ============================================================================

class PKCEVerifier:
    """PKCE (Proof Key for Code Exchange, RFC 7636) utilities."""

    @staticmethod
    def generate_code_verifier(length: int = 64) -> str:
        """
        Generate code verifier.

        Args:
            length: Length of verifier (43-128 chars)
        """
        if not 43 <= length <= 128:
            length = 128
        random_bytes = secrets.token_bytes(length)
        return base64.urlsafe_b64encode(random_bytes).decode("ascii").rstrip("=")[:length]

    @staticmethod
    def generate_code_challenge(verifier: str) -> str:
        """S256 code challenge for ``verifier``."""
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


# ============================================================================
# Attempt Records
# ============================================================================

@dataclass(frozen=True)
class AttemptRecord:
    """What must survive between the redirect and its callback."""
    state: str = field(repr=False)
    redirect_uri: str
    code_verifier: str | None = field(default=None, repr=False)
    created_at: datetime = field(default_factory=datetime.utcnow)


class StateStore(Protocol):
    """Protocol for attempt-record storage."""

    async def save(self, correlation_id: str, record: AttemptRecord) -> None:
        """Store the record for one attempt."""
        ...

    async def consume(self, correlation_id: str) -> AttemptRecord | None:
        """Remove and return the record (one-time use)."""
        ...


class MemoryStateStore:
    """In-memory attempt-record storage for development/testing."""

    def __init__(self, ttl_seconds: int = 600):
        self.ttl_seconds = ttl_seconds
        self._records: dict[str, AttemptRecord] = {}
        self._lock = asyncio.Lock()

    def _is_expired(self, record: AttemptRecord) -> bool:
        return datetime.utcnow() - record.created_at > timedelta(seconds=self.ttl_seconds)

    async def save(self, correlation_id: str, record: AttemptRecord) -> None:
        async with self._lock:
            self._records[correlation_id] = record

    async def consume(self, correlation_id: str) -> AttemptRecord | None:
        async with self._lock:
            record = self._records.pop(correlation_id, None)
        if record is None or self._is_expired(record):
            return None
        return record

    async def purge_expired(self) -> int:
        """Drop expired records. Returns the number removed."""
        async with self._lock:
            expired = [k for k, r in self._records.items() if self._is_expired(r)]
            for key in expired:
                del self._records[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._records)
