"""
TruthForge — Evidence Sources

Independent observers of the system under validation. Each source returns
a structured record and degrades to an error-shaped record of the same
schema instead of raising.
"""

from truthforge.systems.evidence.api_health import ApiHealthSource
from truthforge.systems.evidence.base import EvidenceSource, collect_safely
from truthforge.systems.evidence.database_state import DatabaseStateSource
from truthforge.systems.evidence.performance import PerformanceSource, classify_performance
from truthforge.systems.evidence.security import SecurityValidator
from truthforge.systems.evidence.test_runner import TestSuiteRunner
from truthforge.systems.evidence.types import (
    ApiHealthEvidence,
    DatabaseStateEvidence,
    PerformanceEvidence,
    SecurityEvidence,
    TestSuiteEvidence,
    UiStateEvidence,
)
from truthforge.systems.evidence.ui_state import ScreenshotCapture, UiStateSource

__all__ = [
    "ApiHealthEvidence",
    "ApiHealthSource",
    "DatabaseStateEvidence",
    "DatabaseStateSource",
    "EvidenceSource",
    "PerformanceEvidence",
    "PerformanceSource",
    "ScreenshotCapture",
    "SecurityEvidence",
    "SecurityValidator",
    "TestSuiteEvidence",
    "TestSuiteRunner",
    "UiStateEvidence",
    "UiStateSource",
    "classify_performance",
    "collect_safely",
]
