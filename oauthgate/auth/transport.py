"""
Token endpoint transport - async token requests via httpx.

- Form-encoded body taken verbatim from the grant's request map
- Caller-supplied timeout per request
- Timeouts, network errors and non-2xx answers become TokenExchangeError
- No automatic retries

Request bodies, tokens and codes are never logged.

Usage::

    async with TokenEndpointClient(config) as endpoint:
        tokens = await endpoint.exchange(grant, timeout=5.0)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from oauthgate.config import OAuthClientConfig

from .core import TokenResponse
from .faults import MalformedTokenResponseError, TokenExchangeError
from .grants import Grant, to_request_map

logger = logging.getLogger("oauthgate.auth.transport")

_USER_AGENT = "oauthgate/0.1"


class TokenEndpointClient:
    """
    Talks to one provider's token (and userinfo) endpoints.

    An ``httpx.AsyncClient`` may be injected; otherwise one is created and
    owned (closed by ``aclose()``).
    """

    def __init__(self, config: OAuthClientConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": _USER_AGENT},
            timeout=httpx.Timeout(config.timeout),
        )

    async def __aenter__(self) -> TokenEndpointClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    # ── Token Exchange ──────────────────────────────────────────────

    async def exchange(self, grant: Grant, *, timeout: float | None = None) -> TokenResponse:
        """
        POST the grant to the token endpoint.

        Raises:
            TokenExchangeError: Network failure, timeout, or non-2xx status
            MalformedTokenResponseError: 2xx without a usable token body
        """
        grant_type = grant.grant_type.value
        body = to_request_map(grant)

        try:
            response = await self._client.post(
                self.config.token_endpoint,
                data=dict(body),
                headers={"Accept": "application/json"},
                timeout=timeout if timeout is not None else self.config.timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                f"Token request timed out ({self.config.name}, grant={grant_type})"
            )
            raise TokenExchangeError(detail="timeout") from e
        except httpx.HTTPError as e:
            logger.warning(
                f"Token request failed ({self.config.name}, grant={grant_type}): "
                f"{type(e).__name__}"
            )
            raise TokenExchangeError(detail=type(e).__name__) from e

        if not response.is_success:
            raise self._error_from_response(response, grant_type)

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedTokenResponseError(detail="body is not JSON") from e

        tokens = TokenResponse.from_dict(payload)
        logger.info(
            f"Token exchange succeeded ({self.config.name}, grant={grant_type}, "
            f"status={response.status_code})"
        )
        return tokens

    def _error_from_response(self, response: httpx.Response, grant_type: str) -> TokenExchangeError:
        """Build a TokenExchangeError from a non-2xx response (RFC 6749 §5.2)."""
        error = None
        description = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            if isinstance(body.get("error"), str):
                error = body["error"]
            if isinstance(body.get("error_description"), str):
                description = body["error_description"]

        logger.warning(
            f"Token endpoint rejected request ({self.config.name}, grant={grant_type}): "
            f"HTTP {response.status_code} {error or ''}".rstrip()
        )
        return TokenExchangeError(
            error=error,
            error_description=description,
            status=response.status_code,
        )

    # ── Userinfo ────────────────────────────────────────────────────

    async def fetch_userinfo(
        self, access_token: str, *, timeout: float | None = None
    ) -> dict[str, Any]:
        """
        Fetch OpenID Connect userinfo claims with the access token.

        Raises:
            TokenExchangeError: Endpoint not configured, unreachable or non-2xx
            MalformedTokenResponseError: Body is not a JSON object
        """
        if not self.config.userinfo_endpoint:
            raise TokenExchangeError(detail="userinfo endpoint not configured")

        try:
            response = await self._client.get(
                self.config.userinfo_endpoint,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {access_token}",
                },
                timeout=timeout if timeout is not None else self.config.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Userinfo request failed ({self.config.name}): {type(e).__name__}")
            raise TokenExchangeError(detail=type(e).__name__) from e

        if not response.is_success:
            raise self._error_from_response(response, "userinfo")

        try:
            claims = response.json()
        except ValueError as e:
            raise MalformedTokenResponseError(detail="userinfo body is not JSON") from e
        if not isinstance(claims, dict):
            raise MalformedTokenResponseError(detail="userinfo body is not an object")
        return claims

    def __repr__(self) -> str:
        return f"TokenEndpointClient(name={self.config.name!r}, endpoint={self.config.token_endpoint!r})"
