"""
OauthGate Auth - OAuth2 Grants

Typed token-request bodies, one frozen value per grant type (RFC 6749 §4).

``to_request_map()`` is the single source of truth for what leaves the
process toward the token endpoint:
- only fields defined for the grant are emitted
- absent optional fields are omitted, never sent empty
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Union

from .faults import InvalidCredentialError

if TYPE_CHECKING:
    from oauthgate.config import OAuthClientConfig

    from .credentials import SecureCredential


KEY_GRANT_TYPE = "grant_type"
KEY_CLIENT_ID = "client_id"
KEY_CLIENT_SECRET = "client_secret"
KEY_USERNAME = "username"
KEY_PASSWORD = "password"
KEY_SCOPE = "scope"
KEY_CODE = "code"
KEY_REDIRECT_URI = "redirect_uri"
KEY_REFRESH_TOKEN = "refresh_token"
KEY_CODE_VERIFIER = "code_verifier"

SECRET_KEYS = frozenset({
    KEY_PASSWORD,
    KEY_CLIENT_SECRET,
    KEY_REFRESH_TOKEN,
    KEY_CODE,
    KEY_CODE_VERIFIER,
})


class GrantType(str, Enum):
    """OAuth 2.0 grant types."""
    PASSWORD = "password"
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


class SecureGrantMap(dict):
    """Request map whose textual form masks secret values."""

    def __repr__(self) -> str:
        masked = {k: ("***" if k in SECRET_KEYS else v) for k, v in self.items()}
        return repr(masked)

    __str__ = __repr__


def scope_string(scopes: Iterable[str] | None) -> str | None:
    """Join scopes with a single space, keeping order. Empty -> None."""
    if not scopes:
        return None
    joined = " ".join(scopes)
    return joined or None


def _is_utf8(secret: bytes | bytearray) -> bool:
    try:
        secret.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


# ============================================================================
# Grant Variants
# ============================================================================

@dataclass(frozen=True)
class PasswordGrant:
    """Resource owner password credentials grant (RFC 6749 §4.3)."""
    username: str
    password: bytes | bytearray = field(repr=False, compare=False)
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    scope: str | None = None

    @property
    def grant_type(self) -> GrantType:
        return GrantType.PASSWORD

    def to_request_map(self) -> SecureGrantMap:
        return to_request_map(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PasswordGrant):
            return NotImplemented
        same_fields = (
            (self.username, self.client_id, self.client_secret, self.scope)
            == (other.username, other.client_id, other.client_secret, other.scope)
        )
        same_password = hmac.compare_digest(self.password, other.password)
        return same_fields & same_password

    @classmethod
    def from_credential(
        cls, credential: SecureCredential, config: OAuthClientConfig
    ) -> PasswordGrant:
        """
        Build from an inbound credential and the client configuration.

        Raises:
            InvalidCredentialError: Identity or secret is empty, or the
                secret is not valid UTF-8
        """
        if credential is None or credential.is_blank():
            raise InvalidCredentialError(
                username=credential.identity if credential is not None else None
            )
        if not _is_utf8(credential.secret_bytes()):
            raise InvalidCredentialError(
                username=credential.identity, detail="secret is not valid UTF-8"
            )
        return cls(
            username=credential.identity,
            password=credential.secret_bytes(),
            client_id=config.client_id or None,
            client_secret=config.client_secret or None,
            scope=scope_string(config.scopes),
        )


@dataclass(frozen=True)
class AuthorizationCodeGrant:
    """Authorization code grant (RFC 6749 §4.1.3, RFC 7636 §4.5)."""
    code: str = field(repr=False)
    redirect_uri: str
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    code_verifier: str | None = field(default=None, repr=False)

    @property
    def grant_type(self) -> GrantType:
        return GrantType.AUTHORIZATION_CODE

    def to_request_map(self) -> SecureGrantMap:
        return to_request_map(self)

    @classmethod
    def from_callback(
        cls,
        code: str,
        config: OAuthClientConfig,
        redirect_uri: str | None = None,
        code_verifier: str | None = None,
    ) -> AuthorizationCodeGrant:
        return cls(
            code=code,
            redirect_uri=redirect_uri or config.redirect_uri,
            client_id=config.client_id or None,
            client_secret=config.client_secret or None,
            code_verifier=code_verifier,
        )


@dataclass(frozen=True)
class RefreshTokenGrant:
    """Refresh token grant (RFC 6749 §6)."""
    refresh_token: str = field(repr=False)
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    scope: str | None = None

    @property
    def grant_type(self) -> GrantType:
        return GrantType.REFRESH_TOKEN

    def to_request_map(self) -> SecureGrantMap:
        return to_request_map(self)

    @classmethod
    def from_token(
        cls,
        refresh_token: str,
        config: OAuthClientConfig,
        scopes: Iterable[str] | None = None,
    ) -> RefreshTokenGrant:
        return cls(
            refresh_token=refresh_token,
            client_id=config.client_id or None,
            client_secret=config.client_secret or None,
            scope=scope_string(scopes),
        )


@dataclass(frozen=True)
class ClientCredentialsGrant:
    """Client credentials grant (RFC 6749 §4.4)."""
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    scope: str | None = None

    @property
    def grant_type(self) -> GrantType:
        return GrantType.CLIENT_CREDENTIALS

    def to_request_map(self) -> SecureGrantMap:
        return to_request_map(self)

    @classmethod
    def from_config(cls, config: OAuthClientConfig) -> ClientCredentialsGrant:
        return cls(
            client_id=config.client_id or None,
            client_secret=config.client_secret or None,
            scope=scope_string(config.scopes),
        )


Grant = Union[PasswordGrant, AuthorizationCodeGrant, RefreshTokenGrant, ClientCredentialsGrant]


# ============================================================================
# Serialization
# ============================================================================

def _put(m: SecureGrantMap, key: str, value: str | None) -> None:
    if value:
        m[key] = value


def to_request_map(grant: Grant) -> SecureGrantMap:
    """
    Serialize a grant into the token endpoint form body.

    Raises:
        TypeError: Not one of the grant variants
        InvalidCredentialError: Password grant secret is not valid UTF-8
    """
    m = SecureGrantMap()

    if isinstance(grant, PasswordGrant):
        # Raised outside the except block so no decode error is chained
        if not _is_utf8(grant.password):
            raise InvalidCredentialError(
                username=grant.username, detail="secret is not valid UTF-8"
            )
        m[KEY_GRANT_TYPE] = GrantType.PASSWORD.value
        m[KEY_USERNAME] = grant.username
        # Form bodies are text; this is the only place the secret is decoded
        m[KEY_PASSWORD] = grant.password.decode("utf-8")
        _put(m, KEY_SCOPE, grant.scope)
    elif isinstance(grant, AuthorizationCodeGrant):
        m[KEY_GRANT_TYPE] = GrantType.AUTHORIZATION_CODE.value
        m[KEY_CODE] = grant.code
        m[KEY_REDIRECT_URI] = grant.redirect_uri
        _put(m, KEY_CODE_VERIFIER, grant.code_verifier)
    elif isinstance(grant, RefreshTokenGrant):
        m[KEY_GRANT_TYPE] = GrantType.REFRESH_TOKEN.value
        m[KEY_REFRESH_TOKEN] = grant.refresh_token
        _put(m, KEY_SCOPE, grant.scope)
    elif isinstance(grant, ClientCredentialsGrant):
        m[KEY_GRANT_TYPE] = GrantType.CLIENT_CREDENTIALS.value
        _put(m, KEY_SCOPE, grant.scope)
    else:
        raise TypeError(f"Unknown grant type: {type(grant).__name__}")

    _put(m, KEY_CLIENT_ID, grant.client_id)
    _put(m, KEY_CLIENT_SECRET, grant.client_secret)
    return m
