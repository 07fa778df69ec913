"""
TruthForge — Emergency Protocol

Fires when a comprehensive run finds claims contradicted by reality.
Four independent steps; a failing step never prevents the next one:

  1. failure_memory    — append the divergences to the failure-memory document
  2. incident_log      — write the incident snapshot (the only FATAL step)
  3. backup            — best-effort git backup commit
  4. emergency_script  — run the project's stop script, or fall back to
                         deactivating the engine and alerting the operator
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import structlog

from truthforge.clients.artifacts import ArtifactStore
from truthforge.clients.operator import OperatorActions
from truthforge.primitives.common import StepOutcome
from truthforge.systems.validation.types import (
    Claim,
    Divergence,
    EmergencyReport,
    RealitySnapshot,
    StepResult,
)

logger = structlog.get_logger()

STEP_FAILURE_MEMORY = "failure_memory"
STEP_INCIDENT_LOG = "incident_log"
STEP_BACKUP = "backup"
STEP_EMERGENCY_SCRIPT = "emergency_script"

_DETAIL_TAIL = 500


class EmergencyHandler:
    def __init__(
        self,
        artifacts: ArtifactStore,
        operator: OperatorActions,
        deactivate: Callable[[], None] | None = None,
    ) -> None:
        self._artifacts = artifacts
        self._operator = operator
        self._deactivate = deactivate
        self._logger = logger.bind(system="validation", component="emergency")

    async def handle(
        self,
        divergences: Sequence[Divergence],
        claims: Sequence[Claim],
        snapshots: Sequence[RealitySnapshot],
    ) -> EmergencyReport:
        self._logger.error("emergency_protocol_triggered", divergences=len(divergences))
        report = EmergencyReport(divergence_count=len(divergences))

        report.steps.append(self._update_failure_memory(divergences))
        report.steps.append(self._write_incident_log(claims, snapshots))
        report.steps.append(await self._backup())

        script_step, fallback = await self._emergency_script()
        report.steps.append(script_step)
        report.fallback_engaged = fallback

        self._logger.info(
            "emergency_protocol_completed",
            fatal=report.fatal,
            outcomes={s.step: s.outcome.value for s in report.steps},
        )
        return report

    # ─── Steps ───────────────────────────────────────────────────

    def _update_failure_memory(self, divergences: Sequence[Divergence]) -> StepResult:
        try:
            total = self._artifacts.append_failure_memory(divergences)
        except Exception as exc:
            self._logger.error("failure_memory_update_failed", error=str(exc))
            return StepResult(step=STEP_FAILURE_MEMORY, outcome=StepOutcome.DEGRADED, detail=str(exc))
        return StepResult(
            step=STEP_FAILURE_MEMORY,
            outcome=StepOutcome.SUCCESS,
            detail=f"total_failures_prevented={total}",
        )

    def _write_incident_log(
        self,
        claims: Sequence[Claim],
        snapshots: Sequence[RealitySnapshot],
    ) -> StepResult:
        try:
            path = self._artifacts.write_incident_log(claims, snapshots)
        except Exception as exc:
            self._logger.critical(
                "emergency_protocol_failed",
                error=str(exc),
                action="immediate manual intervention required",
            )
            return StepResult(step=STEP_INCIDENT_LOG, outcome=StepOutcome.FATAL, detail=str(exc))
        return StepResult(step=STEP_INCIDENT_LOG, outcome=StepOutcome.SUCCESS, detail=str(path))

    async def _backup(self) -> StepResult:
        if not self._operator.backup_enabled:
            return StepResult(step=STEP_BACKUP, outcome=StepOutcome.SUCCESS, detail="disabled")
        try:
            result = await self._operator.backup_commit()
        except Exception as exc:
            result, error = None, str(exc) or type(exc).__name__
        else:
            error = "git not installed" if result is None else result.output[-_DETAIL_TAIL:].strip()

        if result is not None and result.ok:
            self._logger.info("emergency_backup_created")
            return StepResult(step=STEP_BACKUP, outcome=StepOutcome.SUCCESS, detail="committed")

        self._logger.warning("emergency_backup_failed", error=error)
        return StepResult(step=STEP_BACKUP, outcome=StepOutcome.DEGRADED, detail=error)

    async def _emergency_script(self) -> tuple[StepResult, bool]:
        if not self._operator.emergency_script_exists():
            self._engage_fallback()
            return (
                StepResult(
                    step=STEP_EMERGENCY_SCRIPT,
                    outcome=StepOutcome.DEGRADED,
                    detail="emergency script not found; fallback engaged",
                ),
                True,
            )

        try:
            result = await self._operator.run_emergency_script()
        except Exception as exc:
            result, error = None, str(exc) or type(exc).__name__
        else:
            error = "could not execute" if result is None else result.output[-_DETAIL_TAIL:].strip()

        if result is not None and result.ok:
            return StepResult(step=STEP_EMERGENCY_SCRIPT, outcome=StepOutcome.SUCCESS, detail="executed"), False

        self._logger.error("emergency_script_failed", error=error)
        return StepResult(step=STEP_EMERGENCY_SCRIPT, outcome=StepOutcome.DEGRADED, detail=error), False

    def _engage_fallback(self) -> None:
        if self._deactivate is not None:
            self._deactivate()
        self._logger.critical(
            "manual_intervention_required",
            reason="critical system failure",
            emergency_script=str(self._operator.emergency_script),
            incident_log=str(self._artifacts.incident_log_path),
        )
