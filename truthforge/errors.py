"""
TruthForge — Error Taxonomy

Only EmergencyProtocolFailure is allowed to end a run loudly. Every other
failure is absorbed where it happens and converted into degraded data.
"""

from __future__ import annotations


class TruthForgeError(Exception):
    """Base class for all engine errors."""


class CollectorFailure(TruthForgeError):
    """An evidence source could not complete (error or timeout)."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class ComparisonFailure(TruthForgeError):
    """Claim-vs-reality matching logic failed for one pair."""


class SeverityAssessmentFailure(TruthForgeError):
    """The severity model could not score a divergence."""


class PersistenceFailure(TruthForgeError):
    """A token, report or failure-memory write did not reach disk."""


class EmergencyProtocolFailure(TruthForgeError):
    """The incident log for a catastrophic divergence could not be written."""
