"""
OauthGate Auth - User State & Account Policy

Local account snapshot and the gate applied after a successful secret
match. The policy is pure: user lookup and secret matching happen before
it runs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from .faults import (
    AccountDisabledError,
    AccountExpiredError,
    AccountLockedError,
    AuthFault,
    PasswordExpiredError,
)


@dataclass(frozen=True)
class UserState:
    """Read-only snapshot of a local account."""
    username: str
    encoded_secret: str = field(repr=False)
    enabled: bool = True
    account_expired: bool = False
    account_locked: bool = False
    password_expired: bool = False


class UserStateStore(Protocol):
    """Protocol for user-state lookup."""

    async def find_by_username(self, identity: str) -> UserState | None:
        """Get user state by username."""
        ...


class MemoryUserStateStore:
    """In-memory user-state storage for development/testing."""

    def __init__(self, users: list[UserState] | None = None):
        self._users: dict[str, UserState] = {u.username: u for u in users or []}
        self._lock = asyncio.Lock()

    async def add(self, state: UserState) -> UserState:
        """Add or replace a user state."""
        async with self._lock:
            self._users[state.username] = state
            return state

    async def find_by_username(self, identity: str) -> UserState | None:
        return self._users.get(identity)


class AccountPolicy:
    """
    Post-match validation gate.

    Checks run in a fixed order and the first failing check wins:
    1. disabled
    2. account expired
    3. account locked
    4. password expired
    """

    def evaluate(self, state: UserState) -> AuthFault | None:
        """Return the fault for the first failing check, or None."""
        if not state.enabled:
            return AccountDisabledError(username=state.username)
        if state.account_expired:
            return AccountExpiredError(username=state.username)
        if state.account_locked:
            return AccountLockedError(username=state.username)
        if state.password_expired:
            return PasswordExpiredError(username=state.username)
        return None

    def check(self, state: UserState) -> None:
        """
        Raises:
            AccountDisabledError, AccountExpiredError,
            AccountLockedError, PasswordExpiredError
        """
        fault = self.evaluate(state)
        if fault is not None:
            raise fault
