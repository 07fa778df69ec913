"""
TruthForge — Validation Service

Owns one claim ledger and one reality recorder and runs the
comprehensive validation pipeline over them.

Pipeline:
  capture reality → security → (tests) → claims vs reality
    → (emergency protocol) → aggregate → gate → token

Interface:
  start_validation()                  — activate reality capture
  record_claim()                      — append a claim to the ledger
  capture_reality()                   — snapshot the four state sources
  validate_against_reality()          — current divergences (pure, repeatable)
  create_validation_token()           — persist a pass token
  perform_comprehensive_validation()  — one full run; never raises

Iron rules:
  - No token without a passing gate decision
  - A failed run never touches an existing token
  - Pending claims (nothing captured after them) never diverge
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from truthforge.clients.artifacts import ArtifactStore
from truthforge.clients.operator import OperatorActions
from truthforge.config import TruthForgeConfig
from truthforge.errors import PersistenceFailure
from truthforge.primitives.common import to_json_bytes, utc_now
from truthforge.systems.evidence.api_health import ApiHealthSource
from truthforge.systems.evidence.base import EvidenceSource, collect_safely
from truthforge.systems.evidence.database_state import DatabaseStateSource
from truthforge.systems.evidence.performance import PerformanceSource
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
from truthforge.systems.validation.divergence import DivergenceDetector
from truthforge.systems.validation.emergency import EmergencyHandler
from truthforge.systems.validation.gate import EvidenceAggregator, ValidationGate
from truthforge.systems.validation.ledger import Clock, ClaimLedger, RealityRecorder
from truthforge.systems.validation.triage import SeverityScorer
from truthforge.systems.validation.types import (
    Claim,
    ClaimEvidence,
    Divergence,
    RealitySnapshot,
    ValidationEvidence,
    ValidationResult,
    ValidationSummary,
    ValidationToken,
)

logger = structlog.get_logger()

_TOP_SECURITY_RECOMMENDATIONS = 3


class ValidationService:
    def __init__(
        self,
        config: TruthForgeConfig,
        *,
        api: EvidenceSource[ApiHealthEvidence] | None = None,
        ui: EvidenceSource[UiStateEvidence] | None = None,
        database: EvidenceSource[DatabaseStateEvidence] | None = None,
        performance: EvidenceSource[PerformanceEvidence] | None = None,
        security: EvidenceSource[SecurityEvidence] | None = None,
        tests: EvidenceSource[TestSuiteEvidence] | None = None,
        artifacts: ArtifactStore | None = None,
        operator: OperatorActions | None = None,
        screenshots: ScreenshotCapture | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config
        self._clock = clock
        self._logger = logger.bind(system="validation", component="service")

        root = Path(config.paths.root)
        excluded = config.security.excluded_dirs
        probes = config.probes

        self._artifacts = artifacts or ArtifactStore(config.paths)
        self._operator = operator or OperatorActions(config.paths, config.backup)

        self._ledger = ClaimLedger(clock=clock)
        self._recorder = RealityRecorder(
            api=api or ApiHealthSource(probes.api_endpoints, timeout_s=probes.timeout_s),
            ui=ui or UiStateSource(root, probes.ui_ports, excluded, screenshots=screenshots),
            database=database or DatabaseStateSource(root, excluded),
            performance=performance or PerformanceSource(probes.benchmark_urls),
            timeout_s=probes.timeout_s,
            clock=clock,
        )
        self._security = security or SecurityValidator.from_config(
            config, report_writer=self._artifacts.write_security_report
        )
        self._tests = tests or TestSuiteRunner(root, timeout_s=probes.test_timeout_s)

        self._detector = DivergenceDetector(SeverityScorer())
        self._gate = ValidationGate(self._artifacts, pass_threshold=config.gate.pass_threshold)
        self._emergency = EmergencyHandler(
            self._artifacts, self._operator, deactivate=self._recorder.deactivate
        )
        self._running = False

    # ─── Engine state ────────────────────────────────────────────

    @property
    def active(self) -> bool:
        return self._recorder.active

    @property
    def claims(self) -> list[Claim]:
        return self._ledger.claims

    @property
    def snapshots(self) -> list[RealitySnapshot]:
        return self._recorder.snapshots

    @property
    def artifacts(self) -> ArtifactStore:
        return self._artifacts

    def start_validation(self) -> None:
        self._recorder.activate()
        self._logger.info("validation_started")

    def record_claim(self, feature: str, expected: dict[str, Any]) -> Claim:
        return self._ledger.record(feature, expected)

    async def capture_reality(self) -> RealitySnapshot | None:
        return await self._recorder.capture()

    def record_reality(self, snapshot: RealitySnapshot) -> RealitySnapshot:
        return self._recorder.record(snapshot)

    def validate_against_reality(self) -> list[Divergence]:
        claims, snapshots = self._ledger.claims, self._recorder.snapshots
        divergences = self._detector.detect(claims, snapshots)
        pending = self._detector.pending(claims, snapshots)
        if pending:
            self._logger.info(
                "claims_pending",
                count=len(pending),
                claim_ids=[c.id for c in pending],
            )
        return divergences

    def pending_claims(self) -> list[Claim]:
        return self._detector.pending(self._ledger.claims, self._recorder.snapshots)

    def create_validation_token(self, evidence: dict[str, Any]) -> ValidationToken:
        """Write the pass token. Raises PersistenceFailure."""
        token = ValidationToken(
            timestamp=self._clock(),
            evidence=evidence,
            validator=self._config.validator_name,
        )
        self._gate.issue_token(token)
        self._logger.info("validation_token_created", score=evidence.get("score"))
        return token

    # ─── Comprehensive run ───────────────────────────────────────

    async def perform_comprehensive_validation(self, run_tests: bool = False) -> ValidationResult:
        timestamp = self._clock()

        if self._running:
            self._logger.warning("validation_already_running")
            return ValidationResult(timestamp=timestamp, error="validation already running on this instance")

        self._running = True
        try:
            return await self._run(timestamp, run_tests)
        except Exception as exc:
            self._logger.error("comprehensive_validation_failed", error=str(exc), exc_info=True)
            return ValidationResult(
                timestamp=timestamp,
                passed=False,
                score=0,
                error=str(exc) or type(exc).__name__,
            )
        finally:
            self._running = False

    async def _run(self, timestamp: datetime, run_tests: bool) -> ValidationResult:
        self._logger.info("comprehensive_validation_started", run_tests=run_tests)
        gate_cfg = self._config.gate
        aggregator = EvidenceAggregator()

        self.start_validation()
        snapshot = await self.capture_reality()

        security, _ = await collect_safely(self._security, self._config.probes.test_timeout_s)
        aggregator.add("security", security.score, security.max_score)

        tests: TestSuiteEvidence | None = None
        if run_tests:
            tests, _ = await collect_safely(self._tests, self._config.probes.test_timeout_s)
            aggregator.add(
                "tests",
                gate_cfg.test_suite_points if tests.passed else 0,
                gate_cfg.test_suite_points,
            )

        divergences = self.validate_against_reality()
        pending = self.pending_claims()
        aggregator.add(
            "claims",
            0 if divergences else gate_cfg.claim_check_points,
            gate_cfg.claim_check_points,
        )

        emergency = None
        if divergences:
            emergency = await self._emergency.handle(
                divergences, self._ledger.claims, self._recorder.snapshots
            )

        evidence = ValidationEvidence(
            system_state=snapshot,
            security=security,
            ui=snapshot.ui_elements if snapshot is not None else None,
            tests=tests,
            claims=ClaimEvidence(
                divergences=divergences,
                claimed_behaviors=self._ledger.claims,
                actual_behaviors=self._recorder.snapshots,
                pending_claims=len(pending),
            ),
        )
        overall_score = aggregator.overall_score

        decision = self._gate.decide(
            overall_score,
            security,
            divergences,
            tests=tests,
            tests_requested=run_tests,
            emergency=emergency,
        )
        summary = build_summary(overall_score, evidence)
        recommendations = build_recommendations(evidence)

        token_persisted = False
        error: str | None = None
        if decision.passed:
            digest = evidence_digest(timestamp, aggregator.score, aggregator.max_score, overall_score, evidence)
            try:
                self.create_validation_token({
                    "comprehensive": True,
                    "score": overall_score,
                    "evidence": evidence.categories(),
                    "timestamp": timestamp.isoformat(),
                    "digest": digest,
                })
                token_persisted = True
            except PersistenceFailure as exc:
                error = str(exc)
                self._logger.error("validation_token_not_persisted", error=error)

        if emergency is not None and emergency.fatal:
            error = error or "emergency protocol failed"
            self._logger.critical(
                "emergency_protocol_failed",
                detail="system may be in a critical state; immediate manual intervention required",
            )

        self._logger.info(
            "comprehensive_validation_completed",
            passed=decision.passed,
            overall_score=overall_score,
            divergences=len(divergences),
            pending_claims=len(pending),
            token_persisted=token_persisted,
        )

        return ValidationResult(
            timestamp=timestamp,
            score=aggregator.score,
            max_score=aggregator.max_score,
            overall_score=overall_score,
            passed=decision.passed,
            evidence=evidence,
            summary=summary,
            recommendations=recommendations,
            gate_reasons=decision.reasons,
            token_persisted=token_persisted,
            emergency=emergency,
            error=error,
        )


# ─── Summary & recommendations ──────────────────────────────────


def build_summary(overall_score: int, evidence: ValidationEvidence) -> ValidationSummary:
    claims = evidence.claims
    return ValidationSummary(
        overall_score=overall_score,
        evidence_types=evidence.categories(),
        security_status=evidence.security.overall_status if evidence.security else "unknown",
        ui_screenshots=len(evidence.ui.screenshots) if evidence.ui else 0,
        claim_divergences=len(claims.divergences) if claims else 0,
        pending_claims=claims.pending_claims if claims else 0,
        tests_passed=bool(evidence.tests and evidence.tests.passed),
    )


def build_recommendations(evidence: ValidationEvidence) -> list[str]:
    recommendations: list[str] = []

    if evidence.security is not None:
        recommendations.extend(evidence.security.recommendations[:_TOP_SECURITY_RECOMMENDATIONS])

    if evidence.ui is not None and evidence.ui.errors:
        recommendations.append("Fix UI errors detected during UI inspection")

    if evidence.tests is not None and not evidence.tests.passed:
        recommendations.append("Fix failing tests before creating checkpoint")

    if evidence.claims is not None and evidence.claims.divergences:
        recommendations.append("Resolve claim vs reality divergences before proceeding")

    return recommendations


def evidence_digest(
    timestamp: datetime,
    score: float,
    max_score: float,
    overall_score: int,
    evidence: ValidationEvidence,
) -> str:
    """SHA-256 over the canonical JSON of a run's scored evidence."""
    payload = to_json_bytes({
        "timestamp": timestamp,
        "score": score,
        "max_score": max_score,
        "overall_score": overall_score,
        "evidence": evidence.model_dump(mode="json", by_alias=True),
    })
    return hashlib.sha256(payload).hexdigest()

