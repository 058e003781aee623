"""
OauthGate Auth - Authentication Faults

Structured error types for every way an authentication attempt can end
without success. All of them are terminal for the attempt: nothing here is
retried automatically, a retry is always a new attempt.

Secret material (passwords, client secrets, codes, tokens) never enters a
message or metadata. Usernames are recorded only as a truncated hash.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from oauthgate.faults import FaultDomain, SecurityFault, Severity


class FailureReason(str, Enum):
    """Machine-readable reason carried by a failed AuthenticationResult."""
    INVALID_CREDENTIAL = "invalid_credential"
    USER_NOT_FOUND = "user_not_found"
    CREDENTIALS_DO_NOT_MATCH = "credentials_do_not_match"
    INVALID_STATE = "invalid_state"
    PROVIDER_DENIED = "provider_denied"
    MALFORMED_CALLBACK = "malformed_callback"
    TOKEN_EXCHANGE = "token_exchange"
    MALFORMED_TOKEN_RESPONSE = "malformed_token_response"
    INVALID_GRANT = "invalid_grant"
    ACCOUNT_DISABLED = "account_disabled"
    ACCOUNT_EXPIRED = "account_expired"
    ACCOUNT_LOCKED = "account_locked"
    PASSWORD_EXPIRED = "password_expired"


class AuthFault(SecurityFault):
    """
    Base class for authentication faults.

    Keyword context passed to the constructor is stored in ``metadata``;
    a username is stored only as a truncated hash.
    """
    reason: FailureReason
    retryable = False

    def __init__(self, username: str | None = None, **context: Any):
        super().__init__(metadata=dict(context))
        if username:
            self.metadata["username_hash"] = self._hash_identifier(username)


# ============================================================================
# Credential Faults
# ============================================================================

class InvalidCredentialError(AuthFault):
    """Credential is blank or does not authenticate."""
    code = "AUTH_001"
    message = "Invalid credentials"
    public_message = "Invalid username or password"
    reason = FailureReason.INVALID_CREDENTIAL


class UserNotFoundError(InvalidCredentialError):
    """No local account for the authenticated identity."""
    message = "User not found"
    reason = FailureReason.USER_NOT_FOUND


class CredentialsMismatchError(InvalidCredentialError):
    """Secret does not match the stored encoded secret."""
    message = "Credentials do not match"
    reason = FailureReason.CREDENTIALS_DO_NOT_MATCH


# ============================================================================
# Protocol Faults
# ============================================================================

class InvalidStateError(AuthFault):
    """Callback state does not match the one issued with the redirect."""
    code = "AUTH_016"
    severity = Severity.ERROR
    message = "Anti-forgery state mismatch"
    public_message = "Authorization request could not be verified"
    reason = FailureReason.INVALID_STATE


class ProviderDeniedError(AuthFault):
    """Authorization server returned an error on the callback."""
    code = "AUTH_017"
    message = "Provider denied authorization"
    public_message = "Authorization was denied"
    reason = FailureReason.PROVIDER_DENIED
    status_code = 403

    def __init__(
        self,
        error: str | None = None,
        error_description: str | None = None,
        **context: Any,
    ):
        super().__init__(**context)
        self.error = error
        self.error_description = error_description
        if error:
            self.metadata["error"] = error
        if error_description:
            self.metadata["error_description"] = error_description


class MalformedCallbackError(AuthFault):
    """Callback carries neither an authorization code nor an error."""
    code = "AUTH_018"
    message = "Malformed authorization callback"
    public_message = "Authorization failed"
    reason = FailureReason.MALFORMED_CALLBACK


# ============================================================================
# Token Endpoint Faults
# ============================================================================

class TokenExchangeError(AuthFault):
    """
    Token request failed: network error, timeout, or non-2xx response.

    ``error`` and ``error_description`` hold the provider's error code and
    description when the response body supplied them.
    """
    code = "AUTH_019"
    domain = FaultDomain.IO
    message = "Token exchange failed"
    public_message = "Authentication provider unavailable or rejected the request"
    reason = FailureReason.TOKEN_EXCHANGE

    def __init__(
        self,
        error: str | None = None,
        error_description: str | None = None,
        status: int | None = None,
        **context: Any,
    ):
        super().__init__(**context)
        self.error = error
        self.error_description = error_description
        self.status = status
        if error:
            self.metadata["error"] = error
        if error_description:
            self.metadata["error_description"] = error_description
        if status is not None:
            self.metadata["status"] = status


class MalformedTokenResponseError(AuthFault):
    """Token endpoint answered 2xx but without a usable token."""
    code = "AUTH_020"
    domain = FaultDomain.IO
    message = "Malformed token response"
    public_message = "Authentication provider returned an invalid response"
    reason = FailureReason.MALFORMED_TOKEN_RESPONSE


class InvalidGrantError(AuthFault):
    """Provider rejected the resource-owner password grant."""
    code = "AUTH_012"
    message = "Invalid grant"
    public_message = "Invalid username or password"
    reason = FailureReason.INVALID_GRANT

    def __init__(
        self,
        error: str | None = None,
        error_description: str | None = None,
        **context: Any,
    ):
        super().__init__(**context)
        self.error = error
        self.error_description = error_description
        if error:
            self.metadata["error"] = error
        if error_description:
            self.metadata["error_description"] = error_description


# ============================================================================
# Account Policy Faults
# ============================================================================

class AccountDisabledError(AuthFault):
    """Account is disabled."""
    code = "AUTH_007"
    message = "Account disabled"
    public_message = "Your account is disabled. Please contact support."
    reason = FailureReason.ACCOUNT_DISABLED
    status_code = 403


class AccountExpiredError(AuthFault):
    """Account has expired."""
    code = "AUTH_021"
    message = "Account expired"
    public_message = "Your account has expired"
    reason = FailureReason.ACCOUNT_EXPIRED
    status_code = 403


class AccountLockedError(AuthFault):
    """Account is locked."""
    code = "AUTH_008"
    message = "Account locked"
    public_message = "Your account is locked"
    reason = FailureReason.ACCOUNT_LOCKED
    status_code = 403


class PasswordExpiredError(AuthFault):
    """Password must be changed before signing in."""
    code = "AUTH_022"
    message = "Password expired"
    public_message = "Your password has expired"
    reason = FailureReason.PASSWORD_EXPIRED
    status_code = 403
