"""
OauthGate Auth - Core Types

Authentication results and token endpoint responses.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from .faults import AuthFault, FailureReason, MalformedTokenResponseError


# ============================================================================
# Authentication Result
# ============================================================================

@dataclass(frozen=True)
class AuthenticationResult:
    """
    Terminal outcome of one authentication attempt.

    Either a success carrying the identity and its attributes, or a
    failure carrying a reason and the fault that produced it. Build with
    ``success()`` / ``failure()``.
    """
    authenticated: bool
    identity: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    reason: FailureReason | None = None
    fault: AuthFault | None = field(default=None, compare=False)

    def __post_init__(self):
        if self.authenticated and (self.reason is not None or self.fault is not None):
            raise ValueError("A successful result cannot carry a failure reason")
        if not self.authenticated and self.reason is None:
            raise ValueError("A failed result requires a reason")

    @classmethod
    def success(
        cls, identity: str | None, attributes: Mapping[str, Any] | None = None
    ) -> AuthenticationResult:
        return cls(authenticated=True, identity=identity, attributes=dict(attributes or {}))

    @classmethod
    def failure(cls, fault: AuthFault) -> AuthenticationResult:
        return cls(authenticated=False, reason=fault.reason, fault=fault)

    @property
    def is_success(self) -> bool:
        return self.authenticated

    def raise_for_failure(self) -> AuthenticationResult:
        """Re-raise the fault of a failed result; return self otherwise."""
        if self.fault is not None:
            raise self.fault
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict (attributes are omitted for failures)."""
        if self.authenticated:
            return {
                "authenticated": True,
                "identity": self.identity,
                "attributes": dict(self.attributes),
            }
        return {
            "authenticated": False,
            "reason": self.reason.value,
            "code": self.fault.code if self.fault else None,
        }


# ============================================================================
# Token Response
# ============================================================================

@dataclass
class TokenResponse:
    """
    Successful token endpoint response (RFC 6749 §5.1).

    Unknown fields are kept in ``extra``.
    """
    access_token: str = field(repr=False)
    token_type: str = "Bearer"
    refresh_token: str | None = field(default=None, repr=False)
    expires_in: int | None = None
    id_token: str | None = field(default=None, repr=False)
    scope: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("access_token", "token_type", "refresh_token", "expires_in", "id_token", "scope")

    @classmethod
    def from_dict(cls, data: Any) -> TokenResponse:
        """
        Parse a decoded JSON body.

        Raises:
            MalformedTokenResponseError: Not an object, or no access token
        """
        if not isinstance(data, dict):
            raise MalformedTokenResponseError(detail="response is not a JSON object")

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MalformedTokenResponseError(detail="missing access_token")

        expires_in = data.get("expires_in")
        if expires_in is not None:
            try:
                expires_in = int(expires_in)
            except (TypeError, ValueError):
                raise MalformedTokenResponseError(detail="expires_in is not an integer")

        for key in ("token_type", "refresh_token", "id_token", "scope"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise MalformedTokenResponseError(detail=f"{key} is not a string")

        return cls(
            access_token=access_token,
            token_type=data.get("token_type") or "Bearer",
            refresh_token=data.get("refresh_token"),
            expires_in=expires_in,
            id_token=data.get("id_token"),
            scope=data.get("scope"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    def to_attributes(self) -> dict[str, Any]:
        """Token fields exposed to the caller on a successful result."""
        attributes: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
        }
        if self.refresh_token:
            attributes["refresh_token"] = self.refresh_token
        if self.expires_in is not None:
            attributes["expires_in"] = self.expires_in
        if self.id_token:
            attributes["id_token"] = self.id_token
        if self.scope:
            attributes["scope"] = self.scope
        return attributes


# ============================================================================
# Identity Claims
# ============================================================================

IDENTITY_CLAIMS = ("sub", "preferred_username", "username", "email")


def decode_id_token_claims(id_token: str) -> dict[str, Any]:
    """
    Decode the payload of a compact JWT without verifying its signature.

    Signature and audience checks belong to whoever trusts the provider's
    keys; this only reads the claims the provider returned over TLS.

    Raises:
        MalformedTokenResponseError: Not a three-part JWT with a JSON object payload
    """
    parts = id_token.split(".")
    if len(parts) != 3:
        raise MalformedTokenResponseError(detail="id_token is not a compact JWT")

    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
    except (ValueError, UnicodeError):
        raise MalformedTokenResponseError(detail="id_token payload is not valid JSON")

    if not isinstance(claims, dict):
        raise MalformedTokenResponseError(detail="id_token payload is not an object")
    return claims


def identity_from_claims(claims: Mapping[str, Any]) -> str | None:
    """First non-empty identity claim, in order of preference."""
    for claim in IDENTITY_CLAIMS:
        value = claims.get(claim)
        if value:
            return str(value)
    return None
