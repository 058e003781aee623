"""
OauthGate Faults - Domain-specific fault types.

Provides concrete fault classes for the non-auth domains:
- CONFIG faults
- FLOW faults
- SECURITY base
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.FATAL,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class ConfigMissingFault(ConfigFault):
    """Required configuration is missing."""

    def __init__(self, key: str, **kwargs):
        super().__init__(
            code="CONFIG_MISSING",
            message=f"Required configuration key '{key}' is missing",
            metadata={"key": key, **kwargs.get("metadata", {})},
        )


class ConfigInvalidFault(ConfigFault):
    """Configuration value is invalid."""

    def __init__(self, key: str, reason: str, **kwargs):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata={"key": key, "reason": reason, **kwargs.get("metadata", {})},
        )


# ============================================================================
# FLOW Faults
# ============================================================================

class FlowFault(Fault):
    """Base class for protocol sequencing faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.FLOW,
            severity=severity,
            retryable=False,
            public=False,
            metadata=metadata,
        )


class AttemptStateFault(FlowFault):
    """An authorization attempt was driven out of order or reused."""

    def __init__(self, operation: str, status: str, **kwargs):
        super().__init__(
            code="ATTEMPT_STATE",
            message=f"Cannot {operation} while attempt is {status}",
            metadata={"operation": operation, "status": status, **kwargs.get("metadata", {})},
        )


# ============================================================================
# SECURITY Faults
# ============================================================================

class SecurityFault(Fault):
    """
    Base class for security faults.

    Carries the HTTP status a caller should map the fault to, and a public
    message that never includes identifiers or secret material.
    """

    domain = FaultDomain.SECURITY
    status_code: int = 401

    def to_response(self) -> dict[str, Any]:
        """Body for the 401/403-class response surfaced to the end user."""
        return {
            "error": {
                "code": self.code,
                "message": self.public_message or "Authentication failed",
            },
            "status": self.status_code,
        }
