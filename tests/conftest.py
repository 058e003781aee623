"""
Shared test fixtures and helpers for the OauthGate test suite.
"""

import base64
import json
from typing import Any, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from oauthgate.auth.client import OAuthClient
from oauthgate.auth.hashing import Pbkdf2Matcher
from oauthgate.config import OAuthClientConfig


# ============================================================================
# Config Helpers
# ============================================================================


def make_config(**overrides) -> OAuthClientConfig:
    """Create a client config with sensible defaults."""
    defaults = {
        "name": "acme",
        "client_id": "client-123",
        "client_secret": "shh-client-secret",
        "scopes": ["openid", "email"],
        "redirect_uri": "https://app.example.com/oauth/callback",
        "authorization_endpoint": "https://idp.example.com/authorize",
        "token_endpoint": "https://idp.example.com/token",
    }
    defaults.update(overrides)
    return OAuthClientConfig(**defaults)


# ============================================================================
# Fake Token Server
# ============================================================================


class FakeTokenServer:
    """
    httpx.MockTransport handler that records requests and replays
    scripted responses (or raises scripted exceptions).
    """

    def __init__(self, status: int = 200, body: Any = None, raise_exc: Optional[Exception] = None):
        self.status = status
        self.body = {"access_token": "tok1"} if body is None else body
        self.raise_exc = raise_exc
        self.userinfo: Optional[dict] = None
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_exc is not None:
            raise self.raise_exc
        if request.url.path.endswith("/userinfo"):
            return httpx.Response(200, json=self.userinfo or {})
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(self.status, content=str(self.body).encode())

    @property
    def last_form(self) -> dict:
        """Form body of the last request, single-valued."""
        parsed = parse_qs(self.requests[-1].content.decode(), keep_blank_values=True)
        return {k: v[0] for k, v in parsed.items()}

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def make_client(server: FakeTokenServer, config: Optional[OAuthClientConfig] = None, **kwargs) -> OAuthClient:
    """OAuthClient wired to a fake token server."""
    return OAuthClient(config or make_config(), http_client=server.http_client(), **kwargs)


def make_id_token(claims: dict) -> str:
    """Unsigned compact JWT carrying ``claims``."""
    def b64(data: dict) -> str:
        raw = json.dumps(data).encode()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")
    return f"{b64({'alg': 'none', 'typ': 'JWT'})}.{b64(claims)}.sig"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config() -> OAuthClientConfig:
    return make_config()


@pytest.fixture
def token_server() -> FakeTokenServer:
    return FakeTokenServer()


@pytest.fixture
def fast_matcher() -> Pbkdf2Matcher:
    """PBKDF2 matcher with a low iteration count for quick tests."""
    return Pbkdf2Matcher(iterations=1000)
