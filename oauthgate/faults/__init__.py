"""
OauthGate Faults - typed fault signals.

Errors are data: every failure carries a stable code, a domain, a severity
and a public message that is safe to expose.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain enumeration
- Severity: Severity levels
- Domain faults (config, flow, security)
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
    ConfigMissingFault,
    ConfigInvalidFault,
    FlowFault,
    AttemptStateFault,
    SecurityFault,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "ConfigFault",
    "ConfigMissingFault",
    "ConfigInvalidFault",
    "FlowFault",
    "AttemptStateFault",
    "SecurityFault",
]
