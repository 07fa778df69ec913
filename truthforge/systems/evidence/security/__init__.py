"""
TruthForge — Security Evidence

Heuristic security probes and the validator that scores them.
"""

from truthforge.systems.evidence.security.probes import (
    AuthenticationProbe,
    CryptographyProbe,
    DependencyAuditProbe,
    EnvironmentProbe,
    FileSystemProbe,
    InputValidationProbe,
    SecurityProbe,
    WebServerProbe,
)
from truthforge.systems.evidence.security.validator import (
    SecurityValidator,
    determine_overall_status,
)

__all__ = [
    "AuthenticationProbe",
    "CryptographyProbe",
    "DependencyAuditProbe",
    "EnvironmentProbe",
    "FileSystemProbe",
    "InputValidationProbe",
    "SecurityProbe",
    "SecurityValidator",
    "WebServerProbe",
    "determine_overall_status",
]
