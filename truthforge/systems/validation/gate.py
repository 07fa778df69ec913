"""
TruthForge — Evidence Aggregation & Validation Gate

The aggregator sums per-step score contributions into one 0-100 overall
score. The gate turns that score plus the gathered evidence into a
pass/fail decision, and on pass writes the validation token.

A run passes only when all hold:
  - overall score >= pass threshold (default 60)
  - security status is not "critical" and security evidence was collected
  - no HIGH or CRITICAL divergence
  - the test suite passed, when it was requested
  - the emergency protocol did not fail fatally
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from truthforge.clients.artifacts import ArtifactStore
from truthforge.primitives.common import percentage
from truthforge.systems.evidence.types import ERROR_STATUS, SecurityEvidence, TestSuiteEvidence
from truthforge.systems.validation.types import (
    Divergence,
    EmergencyReport,
    GateDecision,
    ValidationToken,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class Contribution:
    category: str
    score: float
    max_score: float


class EvidenceAggregator:
    def __init__(self) -> None:
        self._contributions: list[Contribution] = []

    def add(self, category: str, score: float, max_score: float) -> None:
        self._contributions.append(Contribution(category, score, max_score))

    @property
    def contributions(self) -> list[Contribution]:
        return list(self._contributions)

    @property
    def score(self) -> float:
        return sum(c.score for c in self._contributions)

    @property
    def max_score(self) -> float:
        return sum(c.max_score for c in self._contributions)

    @property
    def overall_score(self) -> int:
        return percentage(self.score, self.max_score)


class ValidationGate:
    def __init__(self, artifacts: ArtifactStore, pass_threshold: int = 60) -> None:
        self._artifacts = artifacts
        self._pass_threshold = pass_threshold
        self._logger = logger.bind(system="validation", component="gate")

    def decide(
        self,
        overall_score: int,
        security: SecurityEvidence | None,
        divergences: Sequence[Divergence],
        tests: TestSuiteEvidence | None = None,
        tests_requested: bool = False,
        emergency: EmergencyReport | None = None,
    ) -> GateDecision:
        reasons: list[str] = []

        if overall_score < self._pass_threshold:
            reasons.append(f"overall score {overall_score} below threshold {self._pass_threshold}")

        if security is not None and security.overall_status == "critical":
            reasons.append("critical security status")
        elif security is not None and security.overall_status == ERROR_STATUS:
            reasons.append(f"security evidence unavailable: {security.error or 'unknown error'}")

        blocking = [d for d in divergences if d.blocking]
        if blocking:
            reasons.append(f"{len(blocking)} HIGH/CRITICAL claim divergence(s)")

        if tests_requested and (tests is None or not tests.passed):
            reasons.append("test suite did not pass")

        if emergency is not None and emergency.fatal:
            reasons.append("emergency protocol failed")

        decision = GateDecision(passed=not reasons, reasons=reasons)
        self._logger.info(
            "gate_decided",
            passed=decision.passed,
            overall_score=overall_score,
            reasons=reasons,
        )
        return decision

    def issue_token(self, token: ValidationToken) -> None:
        """Persist the pass token. Raises PersistenceFailure."""
        self._artifacts.write_token(token)
