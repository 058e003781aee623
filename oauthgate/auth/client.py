"""
OauthGate Auth - OAuth2 Client Flows

Client side of:
- Authorization Code Flow (redirect + callback, optional PKCE)
- Resource Owner Password Flow (with optional local account policy)
- Refresh Token Flow
- Client Credentials Flow

Each attempt walks a small state machine:

    IDLE -> REDIRECT_ISSUED -> CALLBACK_RECEIVED -> TOKEN_EXCHANGED -> AUTHENTICATED
                                                                   \\-> FAILED

Direct grants (password, refresh, client credentials) go
IDLE -> TOKEN_EXCHANGED. Terminal states are final; an attempt is never
reused, a retry is a new attempt with a fresh state value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping
from urllib.parse import quote, urlencode

import httpx

from oauthgate.config import OAuthClientConfig
from oauthgate.faults import AttemptStateFault

from .core import (
    AuthenticationResult,
    TokenResponse,
    decode_id_token_claims,
    identity_from_claims,
)
from .credentials import SecureCredential
from .faults import (
    AuthFault,
    CredentialsMismatchError,
    InvalidGrantError,
    InvalidStateError,
    MalformedCallbackError,
    ProviderDeniedError,
    TokenExchangeError,
    UserNotFoundError,
)
from .grants import (
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    Grant,
    PasswordGrant,
    RefreshTokenGrant,
    scope_string,
)
from .hashing import PasswordMatcher, get_password_matcher
from .policy import AccountPolicy, UserStateStore
from .state import (
    AttemptRecord,
    MemoryStateStore,
    PKCEVerifier,
    StateStore,
    generate_correlation_id,
    generate_state,
    states_match,
)
from .transport import TokenEndpointClient

logger = logging.getLogger("oauthgate.auth.client")


class AttemptStatus(str, Enum):
    """Lifecycle of one authorization attempt."""
    IDLE = "idle"
    REDIRECT_ISSUED = "redirect_issued"
    CALLBACK_RECEIVED = "callback_received"
    TOKEN_EXCHANGED = "token_exchanged"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


_TRANSITIONS: dict[AttemptStatus, frozenset[AttemptStatus]] = {
    AttemptStatus.IDLE: frozenset({
        AttemptStatus.REDIRECT_ISSUED,
        AttemptStatus.TOKEN_EXCHANGED,
        AttemptStatus.FAILED,
    }),
    AttemptStatus.REDIRECT_ISSUED: frozenset({
        AttemptStatus.CALLBACK_RECEIVED,
        AttemptStatus.FAILED,
    }),
    AttemptStatus.CALLBACK_RECEIVED: frozenset({
        AttemptStatus.TOKEN_EXCHANGED,
        AttemptStatus.FAILED,
    }),
    AttemptStatus.TOKEN_EXCHANGED: frozenset({
        AttemptStatus.AUTHENTICATED,
        AttemptStatus.FAILED,
    }),
    AttemptStatus.AUTHENTICATED: frozenset(),
    AttemptStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class AuthorizationRedirect:
    """302 response pointing the user agent at the authorization endpoint."""
    location: str
    state: str = field(repr=False)
    correlation_id: str | None = None
    status_code: int = 302

    @property
    def headers(self) -> dict[str, str]:
        return {"Location": self.location}


def _param(params: Mapping[str, Any], key: str) -> str | None:
    """Single query parameter; multi-valued parameters yield their first value."""
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or value == "":
        return None
    return str(value)


# ============================================================================
# Authorization Attempt
# ============================================================================

class AuthorizationAttempt:
    """
    One authorization attempt.

    Drives the state machine and produces exactly one AuthenticationResult.
    Out-of-order calls raise AttemptStateFault.
    """

    def __init__(
        self,
        config: OAuthClientConfig,
        endpoint: TokenEndpointClient,
        correlation_id: str | None = None,
        record: AttemptRecord | None = None,
    ):
        self.config = config
        self.endpoint = endpoint
        self.correlation_id = correlation_id
        self.record = record
        self._status = AttemptStatus.REDIRECT_ISSUED if record else AttemptStatus.IDLE
        self._result: AuthenticationResult | None = None

    @property
    def status(self) -> AttemptStatus:
        return self._status

    @property
    def result(self) -> AuthenticationResult | None:
        return self._result

    @property
    def is_terminal(self) -> bool:
        return self._status in (AttemptStatus.AUTHENTICATED, AttemptStatus.FAILED)

    def _transition(self, target: AttemptStatus, operation: str) -> None:
        if target not in _TRANSITIONS[self._status]:
            raise AttemptStateFault(operation, self._status.value)
        logger.debug(f"Attempt {self._status.value} -> {target.value} ({self.config.name})")
        self._status = target

    # ── Redirect ────────────────────────────────────────────────────

    def authorization_redirect(self) -> AuthorizationRedirect:
        """
        Build the redirect to the authorization endpoint.

        Pure request construction plus a fresh state value; no network.
        """
        self._transition(AttemptStatus.REDIRECT_ISSUED, "issue redirect")

        state = generate_state()
        code_verifier = None

        query: list[tuple[str, str]] = [
            ("response_type", "code"),
            ("client_id", self.config.client_id),
            ("redirect_uri", self.config.redirect_uri),
        ]
        scope = scope_string(self.config.scopes)
        if scope:
            query.append(("scope", scope))
        query.append(("state", state))

        if self.config.use_pkce:
            code_verifier = PKCEVerifier.generate_code_verifier()
            query.append(("code_challenge", PKCEVerifier.generate_code_challenge(code_verifier)))
            query.append(("code_challenge_method", "S256"))

        self.record = AttemptRecord(
            state=state,
            redirect_uri=self.config.redirect_uri,
            code_verifier=code_verifier,
        )

        endpoint = self.config.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        location = f"{endpoint}{separator}{urlencode(query, quote_via=quote)}"

        return AuthorizationRedirect(
            location=location,
            state=state,
            correlation_id=self.correlation_id,
        )

    # ── Callback ────────────────────────────────────────────────────

    async def on_callback(
        self, params: Mapping[str, Any], *, timeout: float | None = None
    ) -> AuthenticationResult:
        """
        Handle the authorization server's redirect back to us.

        Validates state, then error, then code; exchanges the code for
        tokens and returns the terminal result.
        """
        self._transition(AttemptStatus.CALLBACK_RECEIVED, "handle callback")

        try:
            code = self._validate_callback(params)
            grant = AuthorizationCodeGrant.from_callback(
                code,
                self.config,
                redirect_uri=self.record.redirect_uri,
                code_verifier=self.record.code_verifier,
            )
            tokens = await self.exchange(grant, timeout=timeout)
            claims = await self.collect_claims(tokens, timeout=timeout)
            return self.succeed(
                identity_from_claims(claims),
                {**claims, **tokens.to_attributes()},
            )
        except AuthFault as fault:
            return self.fail(fault)

    def _validate_callback(self, params: Mapping[str, Any]) -> str:
        """
        Raises:
            InvalidStateError: State missing or not the one issued
            ProviderDeniedError: Provider sent an error parameter
            MalformedCallbackError: Neither code nor error present
        """
        expected = self.record.state if self.record else None
        if not states_match(expected, _param(params, "state")):
            raise InvalidStateError()

        error = _param(params, "error")
        if error:
            raise ProviderDeniedError(
                error=error,
                error_description=_param(params, "error_description"),
            )

        code = _param(params, "code")
        if not code:
            raise MalformedCallbackError()
        return code

    # ── Exchange & Completion ───────────────────────────────────────

    async def exchange(self, grant: Grant, *, timeout: float | None = None) -> TokenResponse:
        """Send ``grant`` to the token endpoint and move to TOKEN_EXCHANGED."""
        if self._status not in (AttemptStatus.IDLE, AttemptStatus.CALLBACK_RECEIVED):
            raise AttemptStateFault("exchange tokens", self._status.value)

        tokens = await self.endpoint.exchange(grant, timeout=timeout)
        self._transition(AttemptStatus.TOKEN_EXCHANGED, "exchange tokens")
        return tokens

    async def collect_claims(
        self, tokens: TokenResponse, *, timeout: float | None = None
    ) -> dict[str, Any]:
        """
        Identity claims: extra token-response fields, then the id_token
        payload, then userinfo (later sources win).
        """
        claims: dict[str, Any] = dict(tokens.extra)
        if tokens.id_token:
            claims.update(decode_id_token_claims(tokens.id_token))
        if self.config.userinfo_endpoint:
            claims.update(
                await self.endpoint.fetch_userinfo(tokens.access_token, timeout=timeout)
            )
        return claims

    def succeed(self, identity: str | None, attributes: Mapping[str, Any]) -> AuthenticationResult:
        self._transition(AttemptStatus.AUTHENTICATED, "authenticate")
        self._result = AuthenticationResult.success(identity, attributes)
        logger.info(f"Authentication succeeded ({self.config.name})")
        return self._result

    def fail(self, fault: AuthFault) -> AuthenticationResult:
        self._transition(AttemptStatus.FAILED, "fail")
        self._result = AuthenticationResult.failure(fault)
        logger.warning(
            f"Authentication failed ({self.config.name}): {fault.code} {fault.reason.value}"
        )
        return self._result

    def __repr__(self) -> str:
        return f"AuthorizationAttempt(client={self.config.name!r}, status={self._status.value})"


# ============================================================================
# OAuth Client
# ============================================================================

class OAuthClient:
    """
    OAuth 2.0 client for one authorization server registration.

    Every public flow returns a terminal AuthenticationResult; faults from
    the authentication taxonomy are converted into failures, never raised.

    Usage:
        ```python
        client = OAuthClient(config, state_store=sessions)

        redirect = await client.authorization_redirect(session_id)
        # ... user agent follows redirect.location, provider calls back ...
        result = await client.on_callback(session_id, request.query_params)
        ```
    """

    def __init__(
        self,
        config: OAuthClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        endpoint: TokenEndpointClient | None = None,
        state_store: StateStore | None = None,
        user_store: UserStateStore | None = None,
        matcher: PasswordMatcher | None = None,
        policy: AccountPolicy | None = None,
    ):
        self.config = config
        self.endpoint = endpoint or TokenEndpointClient(config, http_client)
        self.state_store = state_store or MemoryStateStore()
        self.user_store = user_store
        self.matcher = matcher or get_password_matcher()
        self.policy = policy or AccountPolicy()

    @property
    def name(self) -> str:
        return self.config.name

    async def __aenter__(self) -> OAuthClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.endpoint.aclose()

    def new_attempt(
        self, correlation_id: str | None = None, record: AttemptRecord | None = None
    ) -> AuthorizationAttempt:
        return AuthorizationAttempt(self.config, self.endpoint, correlation_id, record)

    # ── Authorization Code Flow ─────────────────────────────────────

    async def authorization_redirect(
        self, correlation_id: str | None = None
    ) -> AuthorizationRedirect:
        """
        Start an authorization code attempt.

        Args:
            correlation_id: Per-attempt key (e.g. session id) under which the
                state is stored; generated when omitted and returned on the
                redirect.
        """
        correlation_id = correlation_id or generate_correlation_id()
        attempt = self.new_attempt(correlation_id)
        redirect = attempt.authorization_redirect()
        await self.state_store.save(correlation_id, attempt.record)
        logger.info(f"Authorization redirect issued ({self.name})")
        return redirect

    async def on_callback(
        self,
        correlation_id: str | None,
        params: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> AuthenticationResult:
        """
        Complete an authorization code attempt.

        The stored state is consumed whatever the outcome.
        """
        record = await self.state_store.consume(correlation_id) if correlation_id else None
        attempt = self.new_attempt(correlation_id, record)
        if record is None:
            return attempt.fail(InvalidStateError(detail="no pending authorization attempt"))
        return await attempt.on_callback(params, timeout=timeout)

    # ── Direct Grants ───────────────────────────────────────────────

    async def authenticate_password(
        self, credential: SecureCredential, *, timeout: float | None = None
    ) -> AuthenticationResult:
        """
        Resource owner password flow.

        Provider rejection (400/401) fails with InvalidGrantError. When a
        user store is configured, the local account must exist, its encoded
        secret must match, and it must pass the account policy.
        """
        attempt = self.new_attempt()
        try:
            grant = PasswordGrant.from_credential(credential, self.config)
            try:
                tokens = await attempt.exchange(grant, timeout=timeout)
            except TokenExchangeError as e:
                if e.status in (400, 401):
                    raise InvalidGrantError(
                        username=credential.identity,
                        error=e.error,
                        error_description=e.error_description,
                    ) from e
                raise
            claims = await attempt.collect_claims(tokens, timeout=timeout)

            if self.user_store is not None:
                await self._check_local_account(credential)

            return attempt.succeed(
                identity_from_claims(claims) or credential.identity,
                {**claims, **tokens.to_attributes()},
            )
        except AuthFault as fault:
            return attempt.fail(fault)

    async def _check_local_account(self, credential: SecureCredential) -> None:
        """
        Raises:
            UserNotFoundError, CredentialsMismatchError, or an account policy fault
        """
        state = await self.user_store.find_by_username(credential.identity)
        if state is None:
            raise UserNotFoundError(username=credential.identity)
        if not self.matcher.matches(credential.secret_bytes(), state.encoded_secret):
            raise CredentialsMismatchError(username=credential.identity)
        self.policy.check(state)

    async def refresh(
        self,
        refresh_token: str,
        *,
        scopes: Iterable[str] | None = None,
        timeout: float | None = None,
    ) -> AuthenticationResult:
        """Refresh token flow."""
        attempt = self.new_attempt()
        try:
            grant = RefreshTokenGrant.from_token(refresh_token, self.config, scopes)
            tokens = await attempt.exchange(grant, timeout=timeout)
            claims = await attempt.collect_claims(tokens, timeout=timeout)
            return attempt.succeed(
                identity_from_claims(claims),
                {**claims, **tokens.to_attributes()},
            )
        except AuthFault as fault:
            return attempt.fail(fault)

    async def client_credentials(self, *, timeout: float | None = None) -> AuthenticationResult:
        """Client credentials flow; the client itself is the identity."""
        attempt = self.new_attempt()
        try:
            grant = ClientCredentialsGrant.from_config(self.config)
            tokens = await attempt.exchange(grant, timeout=timeout)
            return attempt.succeed(
                identity_from_claims(tokens.extra) or self.config.client_id,
                {**tokens.extra, **tokens.to_attributes()},
            )
        except AuthFault as fault:
            return attempt.fail(fault)

    def __repr__(self) -> str:
        return f"OAuthClient(name={self.name!r})"
