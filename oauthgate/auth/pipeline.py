"""
OauthGate Auth - Authentication Pipeline

Single entry point turning an inbound credential or callback payload into
one AuthenticationResult.

Composition order is fixed:
credential validation -> grant construction -> token exchange
-> (optional) local account policy -> result
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .client import OAuthClient
from .core import AuthenticationResult
from .credentials import SecureCredential
from .faults import InvalidCredentialError

logger = logging.getLogger("oauthgate.auth.pipeline")


class AuthenticationPipeline:
    """
    Routes a request to the right grant path of an OAuthClient.

    - SecureCredential -> resource owner password flow
    - Mapping of callback parameters -> authorization code flow

    The credential is owned by the pipeline for the duration of the call
    and its secret is wiped before returning, whatever the outcome.
    """

    def __init__(self, client: OAuthClient):
        self.client = client

    async def authenticate(
        self,
        request: SecureCredential | Mapping[str, Any],
        *,
        correlation_id: str | None = None,
        timeout: float | None = None,
    ) -> AuthenticationResult:
        """
        Authenticate one request.

        Args:
            request: Credential (password path) or callback query parameters
            correlation_id: Key of the pending redirect (callback path)
            timeout: Token request timeout in seconds

        Raises:
            TypeError: Unsupported request type
        """
        if isinstance(request, SecureCredential):
            return await self._authenticate_credential(request, timeout=timeout)
        if isinstance(request, Mapping):
            logger.debug(f"Routing callback to client '{self.client.name}'")
            return await self.client.on_callback(correlation_id, request, timeout=timeout)
        raise TypeError(
            f"Cannot authenticate request of type {type(request).__name__}"
        )

    async def _authenticate_credential(
        self, credential: SecureCredential, *, timeout: float | None
    ) -> AuthenticationResult:
        try:
            if credential.is_blank():
                return AuthenticationResult.failure(
                    InvalidCredentialError(username=credential.identity)
                )
            logger.debug(f"Routing password credential to client '{self.client.name}'")
            return await self.client.authenticate_password(credential, timeout=timeout)
        finally:
            credential.wipe()
