"""
TruthForge — Evidence Record Types

Schemas for every record an evidence source can produce. Each schema
carries an optional ``status`` / ``error`` pair so that a source that
failed still yields a record of its own shape: ``{status: "error",
error: "..."}`` with every collection empty.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from truthforge.primitives.common import EvidenceModel, utc_now

ERROR_STATUS = "error"


# ─── API health ──────────────────────────────────────────────────


class EndpointObservation(EvidenceModel):
    url: str
    status: int = 0  # HTTP status code; 0 = no response
    healthy: bool = False
    response_time_ms: float | None = None
    error: str | None = None


class ApiHealthEvidence(EvidenceModel):
    """Overall status is healthy | degraded | critical | error."""

    status: str = "healthy"
    endpoints: list[EndpointObservation] = Field(default_factory=list)
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


# ─── UI state ────────────────────────────────────────────────────


class UiElement(EvidenceModel):
    type: str
    detected: list[str] = Field(default_factory=list)


class UiStateEvidence(EvidenceModel):
    status: str = "ok"
    elements: list[UiElement] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)
    screenshots: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


# ─── Database state ──────────────────────────────────────────────


class DatabaseInfo(EvidenceModel):
    type: str
    file: str | None = None
    tables: list[str] = Field(default_factory=list)
    table_count: int = 0


class DatabaseStateEvidence(EvidenceModel):
    status: str = "ok"
    databases: list[DatabaseInfo] = Field(default_factory=list)
    # Each entry has at least a "type" (integrity_check, data_corruption,
    # integrity_check_failed, access_error, env_file_error, ...)
    inconsistencies: list[dict[str, Any]] = Field(default_factory=list)
    connections: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


# ─── Performance ─────────────────────────────────────────────────


class MemoryMetrics(EvidenceModel):
    total_mb: int = 0
    free_mb: int = 0
    used_mb: int = 0
    percentage: float = 0.0


class CpuMetrics(EvidenceModel):
    cores: int = 1
    load_average: list[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0])


class SystemMetrics(EvidenceModel):
    memory: MemoryMetrics | None = None
    cpu: CpuMetrics | None = None
    uptime_s: int = 0


class Benchmark(EvidenceModel):
    name: str
    duration: float | None = None  # ms
    unit: str = "ms"
    description: str = ""
    error: str | None = None


class PerformanceEvidence(EvidenceModel):
    """overall_status is good | degraded | poor, or None when unmeasured."""

    status: str = "ok"
    system: SystemMetrics = Field(default_factory=SystemMetrics)
    benchmarks: list[Benchmark] = Field(default_factory=list)
    overall_status: str | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    def benchmark(self, name: str) -> Benchmark | None:
        return next((b for b in self.benchmarks if b.name == name), None)


# ─── Security ────────────────────────────────────────────────────


class SecurityVulnerability(EvidenceModel):
    severity: str  # critical | high | medium | low
    type: str
    description: str
    impact: str = ""


class SecurityTestResult(EvidenceModel):
    name: str
    status: str = "completed"
    score: int = 0
    max_score: int = 0
    vulnerabilities: list[SecurityVulnerability] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    error: str | None = None


class SecurityEvidence(EvidenceModel):
    tests: list[SecurityTestResult] = Field(default_factory=list)
    vulnerabilities: list[SecurityVulnerability] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    score: int = 0
    max_score: int = 0
    overall_score: int = 0
    overall_status: str = "unknown"
    error: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


# ─── Test suite ──────────────────────────────────────────────────


class TestSuiteEvidence(EvidenceModel):
    __test__ = False  # not a pytest class

    passed: bool = False
    framework: str | None = None
    output: str | None = None
    error: str | None = None
    message: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)
