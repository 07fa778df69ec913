"""
TruthForge — Security Validator

Runs the security probes in order and folds their results into one
SecurityEvidence record: summed score / max score, an overall 0-100
score and a status label.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import structlog

from truthforge.config import TruthForgeConfig
from truthforge.primitives.common import percentage
from truthforge.systems.evidence.base import EvidenceSource
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
from truthforge.systems.evidence.types import (
    ERROR_STATUS,
    SecurityEvidence,
    SecurityTestResult,
    SecurityVulnerability,
)

logger = structlog.get_logger().bind(system="evidence", component="security")

# Max score recorded for a probe that raised
_ERRORED_PROBE_MAX_SCORE = 10

SecurityReportWriter = Callable[[SecurityEvidence], Path]


def determine_overall_status(score: int, vulnerabilities: list[SecurityVulnerability]) -> str:
    critical = sum(1 for v in vulnerabilities if v.severity == "critical")
    high = sum(1 for v in vulnerabilities if v.severity == "high")

    if critical > 0:
        return "critical"
    if high > 2 or score < 50:
        return "poor"
    if score < 70:
        return "fair"
    if score < 85:
        return "good"
    return "excellent"


class SecurityValidator(EvidenceSource[SecurityEvidence]):
    def __init__(
        self,
        probes: list[SecurityProbe],
        report_writer: SecurityReportWriter | None = None,
    ) -> None:
        self._probes = probes
        self._report_writer = report_writer

    @classmethod
    def from_config(
        cls,
        config: TruthForgeConfig,
        report_writer: SecurityReportWriter | None = None,
    ) -> SecurityValidator:
        root = Path(config.paths.root)
        excluded = config.security.excluded_dirs
        max_files = config.probes.max_scanned_files
        probes: list[SecurityProbe] = [
            FileSystemProbe(root, config.security.sensitive_file_patterns, excluded, max_files),
            EnvironmentProbe(root, excluded, max_files),
            DependencyAuditProbe(root, timeout_s=config.probes.test_timeout_s / 2),
            WebServerProbe(root, config.probes.web_server_ports),
            InputValidationProbe(root, excluded, max_files),
            AuthenticationProbe(root, excluded, max_files),
            CryptographyProbe(root, excluded, max_files),
        ]
        return cls(probes, report_writer if config.security.write_reports else None)

    @property
    def source_name(self) -> str:
        return "security"

    async def collect(self) -> SecurityEvidence:
        evidence = SecurityEvidence()

        for probe in self._probes:
            try:
                result = await probe.run()
            except Exception as exc:
                logger.warning("security_probe_failed", probe=probe.name, error=str(exc))
                result = SecurityTestResult(
                    name=probe.name or "Unknown Test",
                    status=ERROR_STATUS,
                    error=str(exc) or type(exc).__name__,
                    score=0,
                    max_score=_ERRORED_PROBE_MAX_SCORE,
                )
            evidence.tests.append(result)
            evidence.score += result.score
            evidence.max_score += result.max_score
            evidence.vulnerabilities.extend(result.vulnerabilities)
            evidence.recommendations.extend(result.recommendations)

        evidence.overall_score = percentage(evidence.score, evidence.max_score)
        evidence.overall_status = determine_overall_status(
            evidence.overall_score, evidence.vulnerabilities
        )

        logger.info(
            "security_validated",
            overall_score=evidence.overall_score,
            overall_status=evidence.overall_status,
            vulnerabilities=len(evidence.vulnerabilities),
        )

        if self._report_writer is not None:
            try:
                path = self._report_writer(evidence)
                logger.debug("security_report_saved", path=str(path))
            except Exception as exc:
                logger.warning("security_report_failed", error=str(exc))

        return evidence

    @property
    def max_score(self) -> int:
        return sum(p.max_score for p in self._probes)

    def degraded(self, error: str) -> SecurityEvidence:
        # Unscored security still weighs its full max against the run
        return SecurityEvidence(error=error, overall_status=ERROR_STATUS, max_score=self.max_score)
