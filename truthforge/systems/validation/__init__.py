"""
TruthForge — Validation Engine

Claim/reality bookkeeping, divergence detection, severity triage,
evidence aggregation, the pass/fail gate and the emergency protocol.
"""

from truthforge.systems.validation.divergence import DivergenceDetector, behaviors_match
from truthforge.systems.validation.emergency import EmergencyHandler
from truthforge.systems.validation.gate import EvidenceAggregator, ValidationGate
from truthforge.systems.validation.ledger import ClaimLedger, RealityRecorder
from truthforge.systems.validation.service import ValidationService
from truthforge.systems.validation.triage import SeverityScorer
from truthforge.systems.validation.types import (
    Claim,
    ClaimCategory,
    Divergence,
    EmergencyReport,
    GateDecision,
    RealitySnapshot,
    SeverityAssessment,
    SeverityLevel,
    StepResult,
    ValidationResult,
    ValidationToken,
)

__all__ = [
    "Claim",
    "ClaimCategory",
    "ClaimLedger",
    "Divergence",
    "DivergenceDetector",
    "EmergencyHandler",
    "EmergencyReport",
    "EvidenceAggregator",
    "GateDecision",
    "RealityRecorder",
    "RealitySnapshot",
    "SeverityAssessment",
    "SeverityLevel",
    "SeverityScorer",
    "StepResult",
    "ValidationGate",
    "ValidationResult",
    "ValidationService",
    "ValidationToken",
    "behaviors_match",
]
