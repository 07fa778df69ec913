"""
TruthForge — Validation Type Definitions

All data types of the validation engine: claims and their expectations,
reality snapshots, divergences, severity assessments, gate decisions,
emergency reports, and the run result.

Claims and snapshots are immutable once recorded. Divergences are
derived and recomputed on every comparison; they are never persisted on
their own.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, ValidationError

from truthforge.primitives.common import (
    StepOutcome,
    TFBaseModel,
    new_id,
    utc_now,
)
from truthforge.systems.evidence.types import (
    ApiHealthEvidence,
    DatabaseStateEvidence,
    PerformanceEvidence,
    SecurityEvidence,
    TestSuiteEvidence,
    UiStateEvidence,
)


# ─── Enums ────────────────────────────────────────────────────────


class ClaimCategory(enum.StrEnum):
    """What part of reality a claim talks about."""

    API = "api"
    UI = "ui"
    DATABASE = "database"
    PERFORMANCE = "performance"
    SECURITY = "security"
    DATA_INTEGRITY = "data_integrity"


class SeverityLevel(enum.StrEnum):
    """How bad is a divergence?"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ─── Expectations (closed tagged union keyed by `type`) ──────────


class ExpectedEndpoint(TFBaseModel):
    url: str
    status: int | None = None


class ExpectedElement(TFBaseModel):
    type: str | None = None
    name: str | None = None


class ApiExpectation(TFBaseModel):
    type: Literal["api"]
    endpoints: list[ExpectedEndpoint] = Field(default_factory=list)


class UiExpectation(TFBaseModel):
    type: Literal["ui"]
    elements: list[ExpectedElement] = Field(default_factory=list)


class DatabaseExpectation(TFBaseModel):
    type: Literal["database"]
    tables: list[str] = Field(default_factory=list)


class PerformanceExpectation(TFBaseModel):
    type: Literal["performance"]
    response_time: float | None = Field(default=None, alias="responseTime")  # ms
    memory_usage: float | None = Field(default=None, alias="memoryUsage")  # percent


class SecurityExpectation(TFBaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    type: Literal["security"]


class DataIntegrityExpectation(TFBaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    type: Literal["data_integrity"]


Expectation = Annotated[
    ApiExpectation
    | UiExpectation
    | DatabaseExpectation
    | PerformanceExpectation
    | SecurityExpectation
    | DataIntegrityExpectation,
    Field(discriminator="type"),
]

_EXPECTATION_ADAPTER: TypeAdapter[Expectation] = TypeAdapter(Expectation)


def parse_expectation(raw: Any) -> Expectation | None:
    """
    Parse a recorded expectation into its typed variant.

    Returns None for anything that is not a well-formed member of the
    union; callers fall back to structural comparison in that case.
    """
    if not isinstance(raw, dict):
        return None
    try:
        return _EXPECTATION_ADAPTER.validate_python(raw)
    except ValidationError:
        return None


# ─── Claims & Reality ─────────────────────────────────────────────


class Claim(TFBaseModel):
    """
    An agent's assertion about behaviour it expects to hold.

    ``expected`` is stored exactly as recorded; its shape is only
    interpreted at comparison time.
    """

    model_config = {"populate_by_name": True, "frozen": True}

    id: str = Field(default_factory=new_id)
    feature: str
    expected: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def category(self) -> str | None:
        tag = self.expected.get("type")
        return tag if isinstance(tag, str) else None


class RealitySnapshot(TFBaseModel):
    """
    One observed bundle of system state, stamped with the capture start time.

    A slot is None when the snapshot was assembled without that source.
    """

    model_config = {"populate_by_name": True, "frozen": True}

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    api_responses: ApiHealthEvidence | None = Field(default=None, alias="apiResponses")
    ui_elements: UiStateEvidence | None = Field(default=None, alias="uiElements")
    database_state: DatabaseStateEvidence | None = Field(default=None, alias="databaseState")
    performance: PerformanceEvidence | None = None


# ─── Divergence & Severity ────────────────────────────────────────


class SeverityAssessment(TFBaseModel):
    model_config = {"populate_by_name": True, "frozen": True}

    level: SeverityLevel
    score: int = Field(ge=0)
    factors: list[str] = Field(default_factory=list)
    error: str | None = None


class Divergence(TFBaseModel):
    """A claim whose paired reality snapshot failed the comparison."""

    model_config = {"populate_by_name": True, "frozen": True}

    claim: Claim
    reality: RealitySnapshot
    severity: SeverityAssessment

    @property
    def blocking(self) -> bool:
        return self.severity.level in (SeverityLevel.HIGH, SeverityLevel.CRITICAL)


# ─── Pipeline step results ────────────────────────────────────────


class StepResult(TFBaseModel):
    step: str
    outcome: StepOutcome
    detail: str = ""


class EmergencyReport(TFBaseModel):
    """Outcome of one run of the emergency protocol."""

    triggered_at: datetime = Field(default_factory=utc_now)
    divergence_count: int = 0
    steps: list[StepResult] = Field(default_factory=list)
    fallback_engaged: bool = False

    @property
    def fatal(self) -> bool:
        return any(s.outcome == StepOutcome.FATAL for s in self.steps)

    def outcome_of(self, step: str) -> StepOutcome | None:
        return next((s.outcome for s in self.steps if s.step == step), None)


class GateDecision(TFBaseModel):
    passed: bool
    reasons: list[str] = Field(default_factory=list)


# ─── Run result ───────────────────────────────────────────────────


class ClaimEvidence(TFBaseModel):
    divergences: list[Divergence] = Field(default_factory=list)
    claimed_behaviors: list[Claim] = Field(default_factory=list)
    actual_behaviors: list[RealitySnapshot] = Field(default_factory=list)
    pending_claims: int = 0


class ValidationEvidence(TFBaseModel):
    """Evidence gathered by one run, keyed by category."""

    system_state: RealitySnapshot | None = None
    security: SecurityEvidence | None = None
    ui: UiStateEvidence | None = None
    tests: TestSuiteEvidence | None = None
    claims: ClaimEvidence | None = None

    def categories(self) -> list[str]:
        return [name for name in type(self).model_fields if getattr(self, name) is not None]


class ValidationSummary(TFBaseModel):
    overall_score: int = 0
    evidence_types: list[str] = Field(default_factory=list)
    security_status: str = "unknown"
    ui_screenshots: int = 0
    claim_divergences: int = 0
    pending_claims: int = 0
    tests_passed: bool = False


class ValidationResult(TFBaseModel):
    """Result of one comprehensive run. Built once, never mutated."""

    model_config = {"populate_by_name": True, "frozen": True}

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    validation_type: str = "comprehensive"
    score: float = 0
    max_score: float = 0
    overall_score: int = 0
    passed: bool = False
    evidence: ValidationEvidence = Field(default_factory=ValidationEvidence)
    summary: ValidationSummary | None = None
    recommendations: list[str] = Field(default_factory=list)
    gate_reasons: list[str] = Field(default_factory=list)
    token_persisted: bool = False
    emergency: EmergencyReport | None = None
    error: str | None = None


class ValidationToken(TFBaseModel):
    """The persisted proof of the most recent passing run."""

    timestamp: datetime = Field(default_factory=utc_now)
    evidence: dict[str, Any] = Field(default_factory=dict)
    validator: str = "TruthForge Core"
