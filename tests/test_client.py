"""
OAuth client flow tests.

Authorization redirect/callback, password, refresh and client credentials
flows against a fake token endpoint.
"""

from urllib.parse import parse_qs, urlparse

import pytest

from oauthgate.auth.client import AttemptStatus, AuthorizationAttempt, OAuthClient
from oauthgate.auth.credentials import SecureCredential
from oauthgate.auth.faults import (
    AccountLockedError,
    CredentialsMismatchError,
    FailureReason,
    InvalidGrantError,
    InvalidStateError,
    MalformedCallbackError,
    ProviderDeniedError,
    TokenExchangeError,
    UserNotFoundError,
)
from oauthgate.auth.policy import MemoryUserStateStore, UserState
from oauthgate.auth.state import MemoryStateStore, PKCEVerifier
from oauthgate.auth.transport import TokenEndpointClient
from oauthgate.faults import AttemptStateFault

from tests.conftest import FakeTokenServer, make_client, make_config, make_id_token


def query_of(location: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(location).query).items()}


# ============================================================================
# Authorization Redirect
# ============================================================================

class TestAuthorizationRedirect:

    @pytest.mark.asyncio
    async def test_redirect_parameters(self):
        client = make_client(FakeTokenServer())
        redirect = await client.authorization_redirect("sess-1")

        assert redirect.status_code == 302
        assert redirect.headers == {"Location": redirect.location}
        assert redirect.location.startswith("https://idp.example.com/authorize?")

        query = query_of(redirect.location)
        assert query["response_type"] == "code"
        assert query["client_id"] == "client-123"
        assert query["redirect_uri"] == "https://app.example.com/oauth/callback"
        assert query["scope"] == "openid email"
        assert query["state"] == redirect.state
        assert "code_challenge" not in query

    @pytest.mark.asyncio
    async def test_scope_percent_encoded(self):
        redirect = await make_client(FakeTokenServer()).authorization_redirect("sess-1")
        assert "scope=openid%20email" in redirect.location

    @pytest.mark.asyncio
    async def test_no_scope_param_without_scopes(self):
        client = make_client(FakeTokenServer(), make_config(scopes=[]))
        redirect = await client.authorization_redirect("sess-1")
        assert "scope" not in query_of(redirect.location)

    @pytest.mark.asyncio
    async def test_client_secret_never_in_redirect(self):
        redirect = await make_client(FakeTokenServer()).authorization_redirect("sess-1")
        assert "shh-client-secret" not in redirect.location

    @pytest.mark.asyncio
    async def test_existing_query_preserved(self):
        config = make_config(authorization_endpoint="https://idp.example.com/authorize?tenant=x")
        redirect = await make_client(FakeTokenServer(), config).authorization_redirect("sess-1")
        assert redirect.location.startswith("https://idp.example.com/authorize?tenant=x&")

    @pytest.mark.asyncio
    async def test_fresh_state_each_redirect(self):
        client = make_client(FakeTokenServer())
        first = await client.authorization_redirect("sess-1")
        second = await client.authorization_redirect("sess-2")
        assert first.state != second.state

    @pytest.mark.asyncio
    async def test_state_saved_under_correlation_id(self):
        store = MemoryStateStore()
        client = make_client(FakeTokenServer(), state_store=store)
        redirect = await client.authorization_redirect("sess-1")

        record = await store.consume("sess-1")
        assert record.state == redirect.state

    @pytest.mark.asyncio
    async def test_generated_correlation_id(self):
        redirect = await make_client(FakeTokenServer()).authorization_redirect()
        assert redirect.correlation_id.startswith("att_")

    @pytest.mark.asyncio
    async def test_pkce_challenge(self):
        store = MemoryStateStore()
        client = make_client(FakeTokenServer(), make_config(use_pkce=True), state_store=store)
        redirect = await client.authorization_redirect("sess-1")

        query = query_of(redirect.location)
        record = await store.consume("sess-1")
        assert query["code_challenge_method"] == "S256"
        assert query["code_challenge"] == PKCEVerifier.generate_code_challenge(record.code_verifier)


# ============================================================================
# Callback
# ============================================================================

class TestCallback:

    @pytest.mark.asyncio
    async def test_success(self):
        server = FakeTokenServer(body={"access_token": "tok1", "id_token": make_id_token({"sub": "user-1"})})
        client = make_client(server)
        redirect = await client.authorization_redirect("sess-1")

        result = await client.on_callback("sess-1", {"code": "abc", "state": redirect.state})

        assert result.is_success
        assert result.identity == "user-1"
        assert result.attributes["access_token"] == "tok1"
        assert server.last_form == {
            "grant_type": "authorization_code",
            "code": "abc",
            "redirect_uri": "https://app.example.com/oauth/callback",
            "client_id": "client-123",
            "client_secret": "shh-client-secret",
        }

    @pytest.mark.asyncio
    async def test_multi_valued_params(self):
        client = make_client(FakeTokenServer())
        redirect = await client.authorization_redirect("sess-1")
        result = await client.on_callback("sess-1", {"code": ["abc"], "state": [redirect.state]})
        assert result.is_success

    @pytest.mark.asyncio
    async def test_pkce_verifier_sent(self):
        server = FakeTokenServer()
        client = make_client(server, make_config(use_pkce=True))
        redirect = await client.authorization_redirect("sess-1")

        await client.on_callback("sess-1", {"code": "abc", "state": redirect.state})

        verifier = server.last_form["code_verifier"]
        assert PKCEVerifier.generate_code_challenge(verifier) == query_of(redirect.location)["code_challenge"]

    @pytest.mark.asyncio
    async def test_state_mismatch_no_request(self):
        server = FakeTokenServer()
        client = make_client(server)
        await client.authorization_redirect("sess-1")

        result = await client.on_callback("sess-1", {"code": "abc", "state": "forged"})

        assert not result.is_success
        assert result.reason == FailureReason.INVALID_STATE
        assert isinstance(result.fault, InvalidStateError)
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_missing_state(self):
        server = FakeTokenServer()
        client = make_client(server)
        await client.authorization_redirect("sess-1")

        result = await client.on_callback("sess-1", {"code": "abc"})

        assert result.reason == FailureReason.INVALID_STATE
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_state_mismatch_wins_over_error(self):
        client = make_client(FakeTokenServer())
        await client.authorization_redirect("sess-1")
        result = await client.on_callback("sess-1", {"error": "access_denied", "state": "forged"})
        assert result.reason == FailureReason.INVALID_STATE

    @pytest.mark.asyncio
    async def test_unknown_correlation_id(self):
        server = FakeTokenServer()
        result = await make_client(server).on_callback("nope", {"code": "abc", "state": "s"})
        assert result.reason == FailureReason.INVALID_STATE
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_state_single_use(self):
        client = make_client(FakeTokenServer())
        redirect = await client.authorization_redirect("sess-1")
        params = {"code": "abc", "state": redirect.state}

        assert (await client.on_callback("sess-1", params)).is_success
        replay = await client.on_callback("sess-1", params)
        assert replay.reason == FailureReason.INVALID_STATE

    @pytest.mark.asyncio
    async def test_provider_denied(self):
        server = FakeTokenServer()
        client = make_client(server)
        redirect = await client.authorization_redirect("sess-1")

        result = await client.on_callback("sess-1", {
            "error": "access_denied",
            "error_description": "User said no",
            "state": redirect.state,
        })

        assert result.reason == FailureReason.PROVIDER_DENIED
        assert isinstance(result.fault, ProviderDeniedError)
        assert result.fault.error == "access_denied"
        assert result.fault.error_description == "User said no"
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_malformed_callback(self):
        client = make_client(FakeTokenServer())
        redirect = await client.authorization_redirect("sess-1")
        result = await client.on_callback("sess-1", {"state": redirect.state})
        assert isinstance(result.fault, MalformedCallbackError)

    @pytest.mark.asyncio
    async def test_token_error(self):
        server = FakeTokenServer(status=400, body={"error": "invalid_grant"})
        client = make_client(server)
        redirect = await client.authorization_redirect("sess-1")

        result = await client.on_callback("sess-1", {"code": "abc", "state": redirect.state})

        assert result.reason == FailureReason.TOKEN_EXCHANGE
        assert result.fault.error == "invalid_grant"

    @pytest.mark.asyncio
    async def test_userinfo_claims(self):
        server = FakeTokenServer()
        server.userinfo = {"sub": "user-9", "email": "u9@example.com"}
        client = make_client(server, make_config(userinfo_endpoint="https://idp.example.com/userinfo"))
        redirect = await client.authorization_redirect("sess-1")

        result = await client.on_callback("sess-1", {"code": "abc", "state": redirect.state})

        assert result.identity == "user-9"
        assert result.attributes["email"] == "u9@example.com"
        assert server.requests[-1].headers["authorization"] == "Bearer tok1"


# ============================================================================
# Attempt State Machine
# ============================================================================

class TestAuthorizationAttempt:

    def make_attempt(self) -> AuthorizationAttempt:
        config = make_config()
        return AuthorizationAttempt(config, TokenEndpointClient(config, FakeTokenServer().http_client()))

    def test_redirect_transitions(self):
        attempt = self.make_attempt()
        assert attempt.status == AttemptStatus.IDLE
        attempt.authorization_redirect()
        assert attempt.status == AttemptStatus.REDIRECT_ISSUED

    def test_second_redirect_rejected(self):
        attempt = self.make_attempt()
        attempt.authorization_redirect()
        with pytest.raises(AttemptStateFault):
            attempt.authorization_redirect()

    @pytest.mark.asyncio
    async def test_callback_before_redirect_rejected(self):
        attempt = self.make_attempt()
        with pytest.raises(AttemptStateFault):
            await attempt.on_callback({"code": "abc", "state": "s"})

    @pytest.mark.asyncio
    async def test_terminal_attempt_not_reused(self):
        attempt = self.make_attempt()
        redirect = attempt.authorization_redirect()
        result = await attempt.on_callback({"code": "abc", "state": redirect.state})

        assert result.is_success
        assert attempt.is_terminal
        assert attempt.result is result
        with pytest.raises(AttemptStateFault):
            await attempt.on_callback({"code": "abc", "state": redirect.state})

    @pytest.mark.asyncio
    async def test_failed_attempt_is_terminal(self):
        attempt = self.make_attempt()
        attempt.authorization_redirect()
        result = await attempt.on_callback({"code": "abc", "state": "forged"})

        assert attempt.status == AttemptStatus.FAILED
        assert not result.is_success
        with pytest.raises(AttemptStateFault):
            attempt.succeed("x", {})


# ============================================================================
# Password Flow
# ============================================================================

class TestPasswordFlow:

    @pytest.mark.asyncio
    async def test_success(self):
        server = FakeTokenServer(body={"access_token": "tok1", "refresh_token": "rt1"})
        result = await make_client(server).authenticate_password(SecureCredential("alice", b"hunter2"))

        assert result.is_success
        assert result.identity == "alice"
        assert result.attributes["refresh_token"] == "rt1"
        assert server.last_form["grant_type"] == "password"
        assert server.last_form["password"] == "hunter2"
        assert server.last_form["scope"] == "openid email"

    @pytest.mark.asyncio
    async def test_identity_from_claims(self):
        server = FakeTokenServer(body={"access_token": "tok1", "id_token": make_id_token({"sub": "user-1"})})
        result = await make_client(server).authenticate_password(SecureCredential("alice", b"pw"))
        assert result.identity == "user-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401])
    async def test_provider_rejection_is_invalid_grant(self, status):
        server = FakeTokenServer(status=status, body={"error": "invalid_grant"})
        result = await make_client(server).authenticate_password(SecureCredential("alice", b"pw"))

        assert result.reason == FailureReason.INVALID_GRANT
        assert isinstance(result.fault, InvalidGrantError)
        assert result.fault.error == "invalid_grant"

    @pytest.mark.asyncio
    async def test_server_error_stays_token_exchange(self):
        server = FakeTokenServer(status=500, body={"error": "server_error"})
        result = await make_client(server).authenticate_password(SecureCredential("alice", b"pw"))
        assert isinstance(result.fault, TokenExchangeError)

    @pytest.mark.asyncio
    async def test_blank_credential_no_request(self):
        server = FakeTokenServer()
        result = await make_client(server).authenticate_password(SecureCredential("alice", b""))
        assert result.reason == FailureReason.INVALID_CREDENTIAL
        assert server.requests == []


class TestLocalAccountCheck:

    async def make_store(self, matcher, **flags) -> MemoryUserStateStore:
        store = MemoryUserStateStore()
        await store.add(UserState(username="alice", encoded_secret=matcher.encode(b"hunter2"), **flags))
        return store

    @pytest.mark.asyncio
    async def test_matching_account(self, fast_matcher):
        store = await self.make_store(fast_matcher)
        client = make_client(FakeTokenServer(), user_store=store, matcher=fast_matcher)
        result = await client.authenticate_password(SecureCredential("alice", b"hunter2"))
        assert result.is_success

    @pytest.mark.asyncio
    async def test_user_not_found(self, fast_matcher):
        client = make_client(FakeTokenServer(), user_store=MemoryUserStateStore(), matcher=fast_matcher)
        result = await client.authenticate_password(SecureCredential("alice", b"hunter2"))
        assert isinstance(result.fault, UserNotFoundError)
        assert result.reason == FailureReason.USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_secret_mismatch(self, fast_matcher):
        store = await self.make_store(fast_matcher)
        client = make_client(FakeTokenServer(), user_store=store, matcher=fast_matcher)
        result = await client.authenticate_password(SecureCredential("alice", b"wrong"))
        assert isinstance(result.fault, CredentialsMismatchError)
        assert result.reason == FailureReason.CREDENTIALS_DO_NOT_MATCH

    @pytest.mark.asyncio
    async def test_policy_applied_after_match(self, fast_matcher):
        store = await self.make_store(fast_matcher, account_locked=True)
        client = make_client(FakeTokenServer(), user_store=store, matcher=fast_matcher)
        result = await client.authenticate_password(SecureCredential("alice", b"hunter2"))
        assert isinstance(result.fault, AccountLockedError)

    @pytest.mark.asyncio
    async def test_mismatch_checked_before_policy(self, fast_matcher):
        store = await self.make_store(fast_matcher, enabled=False)
        client = make_client(FakeTokenServer(), user_store=store, matcher=fast_matcher)
        result = await client.authenticate_password(SecureCredential("alice", b"wrong"))
        assert isinstance(result.fault, CredentialsMismatchError)


# ============================================================================
# Refresh & Client Credentials
# ============================================================================

class TestOtherFlows:

    @pytest.mark.asyncio
    async def test_refresh(self):
        server = FakeTokenServer(body={"access_token": "tok2", "username": "alice"})
        result = await make_client(server).refresh("rt1", scopes=["email"])

        assert result.is_success
        assert result.identity == "alice"
        assert result.attributes["access_token"] == "tok2"
        assert server.last_form["grant_type"] == "refresh_token"
        assert server.last_form["refresh_token"] == "rt1"
        assert server.last_form["scope"] == "email"

    @pytest.mark.asyncio
    async def test_refresh_rejected(self):
        server = FakeTokenServer(status=400, body={"error": "invalid_grant"})
        result = await make_client(server).refresh("rt1")
        assert result.reason == FailureReason.TOKEN_EXCHANGE

    @pytest.mark.asyncio
    async def test_client_credentials(self):
        server = FakeTokenServer()
        result = await make_client(server).client_credentials()

        assert result.is_success
        assert result.identity == "client-123"
        assert server.last_form["grant_type"] == "client_credentials"


class TestClientLifecycle:

    def test_name(self):
        assert make_client(FakeTokenServer()).name == "acme"

    @pytest.mark.asyncio
    async def test_context_manager(self):
        async with OAuthClient(make_config()) as client:
            assert isinstance(client.endpoint, TokenEndpointClient)
        assert client.endpoint._client.is_closed


# ============================================================================
# Malformed Token Responses
# ============================================================================

class TestMalformedTokenFields:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["id_token", "refresh_token", "token_type", "scope"])
    async def test_callback_fails_terminally(self, key):
        server = FakeTokenServer(body={"access_token": "tok1", key: 123})
        client = make_client(server)
        redirect = await client.authorization_redirect("sess-1")

        result = await client.on_callback("sess-1", {"code": "abc", "state": redirect.state})

        assert not result.is_success
        assert result.reason == FailureReason.MALFORMED_TOKEN_RESPONSE

    @pytest.mark.asyncio
    async def test_password_flow_fails_terminally(self):
        server = FakeTokenServer(body={"access_token": "tok1", "id_token": {"sub": "x"}})
        result = await make_client(server).authenticate_password(SecureCredential("alice", b"pw"))
        assert result.reason == FailureReason.MALFORMED_TOKEN_RESPONSE

    @pytest.mark.asyncio
    async def test_attempt_reaches_failed(self):
        config = make_config()
        server = FakeTokenServer(body={"access_token": "tok1", "id_token": 123})
        attempt = AuthorizationAttempt(config, TokenEndpointClient(config, server.http_client()))
        redirect = attempt.authorization_redirect()

        await attempt.on_callback({"code": "abc", "state": redirect.state})

        assert attempt.status == AttemptStatus.FAILED
        assert attempt.is_terminal
