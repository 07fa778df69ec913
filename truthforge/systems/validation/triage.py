"""
TruthForge — Severity Triage

Scores a divergence with an additive weighted-factor model. Reality
factors describe how broken the observed system is; the claim-category
factor describes how much a false claim of that kind matters.

  score >= 70  → CRITICAL
  score >= 40  → HIGH
  score >= 20  → MEDIUM
  otherwise    → LOW

HIGH and CRITICAL divergences block the validation gate.
"""

from __future__ import annotations

import structlog

from truthforge.errors import SeverityAssessmentFailure
from truthforge.primitives.common import HealthStatus
from truthforge.systems.validation.types import (
    Claim,
    ClaimCategory,
    RealitySnapshot,
    SeverityAssessment,
    SeverityLevel,
)

logger = structlog.get_logger()


# ─── Weights ─────────────────────────────────────────────────────


_CRITICAL_API = 50
_DB_INTEGRITY = 40
_PERF_POOR = 30
_PERF_DEGRADED = 15
_UI_ERRORS = 20

_DB_INTEGRITY_TYPES = frozenset({"integrity_check", "data_corruption"})

# category → (points, factor description)
_CATEGORY_WEIGHTS: dict[str, tuple[int, str]] = {
    ClaimCategory.SECURITY: (25, "Security-related claim failure"),
    ClaimCategory.DATA_INTEGRITY: (30, "Data integrity claim failure"),
    ClaimCategory.API: (20, "API functionality claim failure"),
    ClaimCategory.UI: (10, "UI functionality claim failure"),
}

# (minimum score, level), highest first
_LEVEL_THRESHOLDS: tuple[tuple[int, SeverityLevel], ...] = (
    (70, SeverityLevel.CRITICAL),
    (40, SeverityLevel.HIGH),
    (20, SeverityLevel.MEDIUM),
)

_FALLBACK_SCORE = 50


class SeverityScorer:
    """Pure and stateless; safe to share across runs."""

    def __init__(self) -> None:
        self._logger = logger.bind(system="validation", component="triage")

    @staticmethod
    def classify(score: int) -> SeverityLevel:
        for minimum, level in _LEVEL_THRESHOLDS:
            if score >= minimum:
                return level
        return SeverityLevel.LOW

    def assess(self, claim: Claim, reality: RealitySnapshot) -> SeverityAssessment:
        try:
            score, factors = self._score(claim, reality)
        except Exception as exc:
            failure = SeverityAssessmentFailure(str(exc) or type(exc).__name__)
            self._logger.warning("severity_assessment_failed", claim_id=claim.id, error=str(failure))
            return SeverityAssessment(
                level=SeverityLevel.HIGH,
                score=_FALLBACK_SCORE,
                factors=["Severity assessment failed"],
                error=str(failure),
            )

        return SeverityAssessment(level=self.classify(score), score=score, factors=factors)

    def _score(self, claim: Claim, reality: RealitySnapshot) -> tuple[int, list[str]]:
        score = 0
        factors: list[str] = []

        api = reality.api_responses
        if api is not None and api.status == HealthStatus.CRITICAL.value:
            score += _CRITICAL_API
            factors.append("Critical API failure detected")

        db = reality.database_state
        if db is not None and any(i.get("type") in _DB_INTEGRITY_TYPES for i in db.inconsistencies):
            score += _DB_INTEGRITY
            factors.append("Database integrity issues found")

        perf = reality.performance
        if perf is not None and perf.overall_status == "poor":
            score += _PERF_POOR
            factors.append("Severe performance degradation")
        elif perf is not None and perf.overall_status == "degraded":
            score += _PERF_DEGRADED
            factors.append("Performance degradation detected")

        ui = reality.ui_elements
        if ui is not None and ui.errors:
            score += _UI_ERRORS
            factors.append("UI errors detected")

        category = claim.category
        if category in _CATEGORY_WEIGHTS:
            points, factor = _CATEGORY_WEIGHTS[category]
            score += points
            factors.append(factor)

        return score, factors
