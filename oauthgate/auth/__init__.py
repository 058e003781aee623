"""
OauthGate Auth - OAuth2 client authentication

- Secure credentials that never leak their secret
- Typed grants serialized to token endpoint bodies
- Authorization redirect / callback flow with anti-forgery state (and PKCE)
- Password, refresh token and client credentials flows
- Local account policy after a successful secret match
"""

# Core types
from .core import (
    AuthenticationResult,
    TokenResponse,
    decode_id_token_claims,
    identity_from_claims,
)

from .credentials import SecureCredential

# Grants
from .grants import (
    Grant,
    GrantType,
    PasswordGrant,
    AuthorizationCodeGrant,
    RefreshTokenGrant,
    ClientCredentialsGrant,
    SecureGrantMap,
    scope_string,
    to_request_map,
)

# Password matching
from .hashing import (
    PasswordMatcher,
    Argon2Matcher,
    Pbkdf2Matcher,
    PasslibMatcher,
    DelegatingPasswordMatcher,
    get_password_matcher,
)

# Account policy
from .policy import (
    UserState,
    UserStateStore,
    MemoryUserStateStore,
    AccountPolicy,
)

# State
from .state import (
    AttemptRecord,
    StateStore,
    MemoryStateStore,
    PKCEVerifier,
    generate_state,
)

# Flows
from .transport import TokenEndpointClient
from .client import (
    AttemptStatus,
    AuthorizationAttempt,
    AuthorizationRedirect,
    OAuthClient,
)
from .pipeline import AuthenticationPipeline

# Faults
from .faults import (
    FailureReason,
    AuthFault,
    InvalidCredentialError,
    UserNotFoundError,
    CredentialsMismatchError,
    InvalidStateError,
    ProviderDeniedError,
    MalformedCallbackError,
    TokenExchangeError,
    MalformedTokenResponseError,
    InvalidGrantError,
    AccountDisabledError,
    AccountExpiredError,
    AccountLockedError,
    PasswordExpiredError,
)


__all__ = [
    # Core types
    "AuthenticationResult",
    "TokenResponse",
    "decode_id_token_claims",
    "identity_from_claims",
    "SecureCredential",
    # Grants
    "Grant",
    "GrantType",
    "PasswordGrant",
    "AuthorizationCodeGrant",
    "RefreshTokenGrant",
    "ClientCredentialsGrant",
    "SecureGrantMap",
    "scope_string",
    "to_request_map",
    # Password matching
    "PasswordMatcher",
    "Argon2Matcher",
    "Pbkdf2Matcher",
    "PasslibMatcher",
    "DelegatingPasswordMatcher",
    "get_password_matcher",
    # Account policy
    "UserState",
    "UserStateStore",
    "MemoryUserStateStore",
    "AccountPolicy",
    # State
    "AttemptRecord",
    "StateStore",
    "MemoryStateStore",
    "PKCEVerifier",
    "generate_state",
    # Flows
    "TokenEndpointClient",
    "AttemptStatus",
    "AuthorizationAttempt",
    "AuthorizationRedirect",
    "OAuthClient",
    "AuthenticationPipeline",
    # Faults
    "FailureReason",
    "AuthFault",
    "InvalidCredentialError",
    "UserNotFoundError",
    "CredentialsMismatchError",
    "InvalidStateError",
    "ProviderDeniedError",
    "MalformedCallbackError",
    "TokenExchangeError",
    "MalformedTokenResponseError",
    "InvalidGrantError",
    "AccountDisabledError",
    "AccountExpiredError",
    "AccountLockedError",
    "PasswordExpiredError",
]
