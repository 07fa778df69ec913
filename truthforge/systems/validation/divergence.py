"""
TruthForge — Divergence Detection

Pairs every claim with the first reality snapshot captured strictly
after it, and compares the two by claim category:

  api          — each expected endpoint is present (and has the expected status)
  ui           — each expected element matches by type or detected name
  database     — expected tables exist; any inconsistency is a mismatch
  performance  — local_http <= 2x expected response time,
                 memory <= 1.5x expected usage
  (otherwise)  — structural equality with timestamps masked

A claim with no later snapshot is pending: it produces no divergence
until reality is captured after it.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from truthforge.errors import ComparisonFailure
from truthforge.primitives.common import normalize_timestamps, to_json_bytes
from truthforge.systems.evidence.types import (
    ApiHealthEvidence,
    DatabaseStateEvidence,
    PerformanceEvidence,
    UiStateEvidence,
)
from truthforge.systems.validation.triage import SeverityScorer
from truthforge.systems.validation.types import (
    ApiExpectation,
    Claim,
    DatabaseExpectation,
    Divergence,
    PerformanceExpectation,
    RealitySnapshot,
    UiExpectation,
    parse_expectation,
)

logger = structlog.get_logger()

_RESPONSE_TIME_TOLERANCE = 2.0
_MEMORY_TOLERANCE = 1.5


def find_matching_reality(
    claim: Claim, snapshots: Sequence[RealitySnapshot]
) -> RealitySnapshot | None:
    """First snapshot in capture order stamped strictly after the claim."""
    return next((s for s in snapshots if s.timestamp > claim.timestamp), None)


# ─── Per-category comparisons ────────────────────────────────────


def compare_api(expected: ApiExpectation, actual: ApiHealthEvidence) -> bool:
    for want in expected.endpoints:
        seen = next((ep for ep in actual.endpoints if ep.url == want.url), None)
        if seen is None:
            return False
        if want.status is not None and seen.status != want.status:
            return False
    return True


def compare_ui(expected: UiExpectation, actual: UiStateEvidence) -> bool:
    for want in expected.elements:
        found = any(
            el.type == want.type or (want.name is not None and want.name in el.detected)
            for el in actual.elements
        )
        if not found:
            return False
    return True


def compare_database(expected: DatabaseExpectation, actual: DatabaseStateEvidence) -> bool:
    if expected.tables and actual.databases:
        observed = {t for db in actual.databases for t in db.tables}
        if any(t not in observed for t in expected.tables):
            return False
    return not actual.inconsistencies


def compare_performance(expected: PerformanceExpectation, actual: PerformanceEvidence) -> bool:
    if expected.response_time:
        http = actual.benchmark("local_http")
        if (
            http is not None
            and http.duration is not None
            and http.duration > expected.response_time * _RESPONSE_TIME_TOLERANCE
        ):
            return False

    memory = actual.system.memory
    if expected.memory_usage and memory is not None:
        if memory.percentage > expected.memory_usage * _MEMORY_TOLERANCE:
            return False

    return True


def structurally_equal(expected: object, reality: RealitySnapshot) -> bool:
    """Canonical-JSON equality with every ISO-8601 timestamp masked."""
    actual = reality.model_dump(mode="json", by_alias=True, exclude={"id"})
    left = normalize_timestamps(to_json_bytes(expected).decode())
    right = normalize_timestamps(to_json_bytes(actual).decode())
    return left == right


def behaviors_match(expected: object, reality: RealitySnapshot) -> bool:
    parsed = parse_expectation(expected)

    if isinstance(parsed, ApiExpectation) and reality.api_responses is not None:
        return compare_api(parsed, reality.api_responses)
    if isinstance(parsed, UiExpectation) and reality.ui_elements is not None:
        return compare_ui(parsed, reality.ui_elements)
    if isinstance(parsed, DatabaseExpectation) and reality.database_state is not None:
        return compare_database(parsed, reality.database_state)
    if isinstance(parsed, PerformanceExpectation) and reality.performance is not None:
        return compare_performance(parsed, reality.performance)

    return structurally_equal(expected, reality)


# ─── Detector ────────────────────────────────────────────────────


class DivergenceDetector:
    """
    Pure over its inputs: the same claims and snapshots always yield an
    equal list of divergences. Results are never cached or deduplicated.
    """

    def __init__(self, scorer: SeverityScorer | None = None) -> None:
        self._scorer = scorer or SeverityScorer()
        self._logger = logger.bind(system="validation", component="divergence")

    def detect(
        self,
        claims: Sequence[Claim],
        snapshots: Sequence[RealitySnapshot],
    ) -> list[Divergence]:
        divergences: list[Divergence] = []

        for claim in claims:
            reality = find_matching_reality(claim, snapshots)
            if reality is None:
                continue
            if self._matches(claim, reality):
                continue

            severity = self._scorer.assess(claim, reality)
            divergences.append(Divergence(claim=claim, reality=reality, severity=severity))
            self._logger.warning(
                "claim_diverged",
                claim_id=claim.id,
                feature=claim.feature,
                snapshot_id=reality.id,
                severity=severity.level.value,
                severity_score=severity.score,
            )

        return divergences

    def pending(
        self,
        claims: Sequence[Claim],
        snapshots: Sequence[RealitySnapshot],
    ) -> list[Claim]:
        """Claims with no snapshot captured after them yet."""
        return [c for c in claims if find_matching_reality(c, snapshots) is None]

    def _matches(self, claim: Claim, reality: RealitySnapshot) -> bool:
        try:
            return behaviors_match(claim.expected, reality)
        except Exception as exc:
            failure = ComparisonFailure(f"claim {claim.id}: {exc}")
            self._logger.warning("behavior_comparison_failed", error=str(failure))
            return False
