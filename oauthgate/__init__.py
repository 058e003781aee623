"""
OauthGate - OAuth2 / OpenID client authentication engine.

Delegates authentication to a third-party authorization server while still
enforcing local account policy and handling secret material safely.
"""

__version__ = "0.1.0"

from .config import OAuthClientConfig, ConfigLoader
from .faults import Fault, FaultDomain, Severity
from .auth import (
    AuthenticationPipeline,
    AuthenticationResult,
    FailureReason,
    OAuthClient,
    SecureCredential,
)

__all__ = [
    "__version__",
    "OAuthClientConfig",
    "ConfigLoader",
    "Fault",
    "FaultDomain",
    "Severity",
    "AuthenticationPipeline",
    "AuthenticationResult",
    "FailureReason",
    "OAuthClient",
    "SecureCredential",
]
