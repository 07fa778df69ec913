"""
Tests for the emergency protocol.

Covers:
  - All four steps run and report their own outcome
  - Incident log failure is the only FATAL outcome
  - Failure memory, backup and script failures degrade
  - A malformed failure-memory document or an unexpected error never skips later steps
  - Missing emergency script engages the fallback and deactivates capture
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from truthforge.clients.artifacts import ArtifactStore
from truthforge.clients.process import CommandResult
from truthforge.config import PathsConfig
from truthforge.errors import EmergencyProtocolFailure, PersistenceFailure
from truthforge.primitives.common import StepOutcome
from truthforge.systems.validation.emergency import (
    STEP_BACKUP,
    STEP_EMERGENCY_SCRIPT,
    STEP_FAILURE_MEMORY,
    STEP_INCIDENT_LOG,
    EmergencyHandler,
)
from truthforge.systems.validation.types import (
    Claim,
    Divergence,
    RealitySnapshot,
    SeverityAssessment,
    SeverityLevel,
)

_T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _make_divergence() -> Divergence:
    return Divergence(
        claim=Claim(feature="login", expected={"type": "api"}, timestamp=_T0),
        reality=RealitySnapshot(timestamp=_T0),
        severity=SeverityAssessment(level=SeverityLevel.CRITICAL, score=70),
    )


def _make_operator(
    backup_enabled: bool = True,
    backup_result: CommandResult | None = CommandResult(0, "committed", ""),
    script_exists: bool = True,
    script_result: CommandResult | None = CommandResult(0, "stopped", ""),
) -> MagicMock:
    operator = MagicMock()
    operator.backup_enabled = backup_enabled
    operator.emergency_script = Path("/project/emergency-stop.sh")
    operator.backup_commit = AsyncMock(return_value=backup_result)
    operator.emergency_script_exists = MagicMock(return_value=script_exists)
    operator.run_emergency_script = AsyncMock(return_value=script_result)
    return operator


async def _handle(handler: EmergencyHandler):
    divergence = _make_divergence()
    return await handler.handle([divergence], [divergence.claim], [divergence.reality])


class TestEmergencyHandler:
    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, tmp_path):
        artifacts = ArtifactStore(PathsConfig(root=str(tmp_path)))
        handler = EmergencyHandler(artifacts, _make_operator())
        report = await _handle(handler)

        assert [s.step for s in report.steps] == [
            STEP_FAILURE_MEMORY, STEP_INCIDENT_LOG, STEP_BACKUP, STEP_EMERGENCY_SCRIPT,
        ]
        assert all(s.outcome == StepOutcome.SUCCESS for s in report.steps)
        assert not report.fatal
        assert not report.fallback_engaged
        assert report.divergence_count == 1

        memory = orjson.loads(artifacts.failure_memory_path.read_bytes())
        assert memory["statistics"]["total_failures_prevented"] == 1
        incident = orjson.loads(artifacts.incident_log_path.read_bytes())
        assert incident["event"] == "catastrophic_failure_detected"
        assert incident["action"] == "emergency_protocol_triggered"
        assert len(incident["claims"]) == 1

    @pytest.mark.asyncio
    async def test_incident_log_failure_is_fatal(self):
        artifacts = MagicMock()
        artifacts.append_failure_memory.return_value = 1
        artifacts.write_incident_log.side_effect = EmergencyProtocolFailure("disk full")
        operator = _make_operator()
        report = await _handle(EmergencyHandler(artifacts, operator))

        assert report.fatal
        assert report.outcome_of(STEP_INCIDENT_LOG) == StepOutcome.FATAL
        # Later steps still run
        operator.backup_commit.assert_awaited_once()
        operator.run_emergency_script.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_incident_log_under_a_file_is_fatal(self, tmp_path):
        (tmp_path / "blocker").write_text("not a directory")
        paths = PathsConfig(root=str(tmp_path), emergency_log_file="blocker/emergency.log")
        report = await _handle(EmergencyHandler(ArtifactStore(paths), _make_operator()))
        assert report.outcome_of(STEP_INCIDENT_LOG) == StepOutcome.FATAL

    @pytest.mark.asyncio
    async def test_failure_memory_failure_degrades(self):
        artifacts = MagicMock()
        artifacts.append_failure_memory.side_effect = PersistenceFailure("read-only")
        artifacts.write_incident_log.return_value = Path("/tmp/emergency.log")
        report = await _handle(EmergencyHandler(artifacts, _make_operator()))

        assert report.outcome_of(STEP_FAILURE_MEMORY) == StepOutcome.DEGRADED
        assert report.outcome_of(STEP_INCIDENT_LOG) == StepOutcome.SUCCESS
        assert not report.fatal

    @pytest.mark.asyncio
    async def test_corrupt_failure_memory_degrades(self, tmp_path):
        artifacts = ArtifactStore(PathsConfig(root=str(tmp_path)))
        artifacts.failure_memory_path.parent.mkdir(parents=True)
        artifacts.failure_memory_path.write_text("{not json")
        report = await _handle(EmergencyHandler(artifacts, _make_operator()))
        assert report.outcome_of(STEP_FAILURE_MEMORY) == StepOutcome.DEGRADED

    @pytest.mark.parametrize(
        "memory",
        [
            {"statistics": {"total_failures_prevented": None}},
            {"statistics": {"total_failures_prevented": "7"}},
            {"statistics": []},
            {"patterns": {}},
            [],
        ],
    )
    @pytest.mark.asyncio
    async def test_malformed_failure_memory_does_not_stop_later_steps(self, tmp_path, memory):
        artifacts = ArtifactStore(PathsConfig(root=str(tmp_path)))
        artifacts.failure_memory_path.parent.mkdir(parents=True)
        artifacts.failure_memory_path.write_bytes(orjson.dumps(memory))
        operator = _make_operator()
        report = await _handle(EmergencyHandler(artifacts, operator))

        assert report.outcome_of(STEP_FAILURE_MEMORY) == StepOutcome.DEGRADED
        assert report.outcome_of(STEP_INCIDENT_LOG) == StepOutcome.SUCCESS
        assert artifacts.incident_log_path.exists()
        operator.backup_commit.assert_awaited_once()
        operator.run_emergency_script.assert_awaited_once()
        # Left as found
        assert orjson.loads(artifacts.failure_memory_path.read_bytes()) == memory

    @pytest.mark.asyncio
    async def test_unexpected_errors_stay_inside_their_step(self):
        artifacts = MagicMock()
        artifacts.append_failure_memory.side_effect = TypeError("bad total")
        artifacts.write_incident_log.return_value = Path("/tmp/emergency.log")
        operator = _make_operator()
        operator.backup_commit.side_effect = RuntimeError("git exploded")
        operator.run_emergency_script.side_effect = ValueError("bad script")
        report = await _handle(EmergencyHandler(artifacts, operator))

        assert [s.outcome for s in report.steps] == [
            StepOutcome.DEGRADED, StepOutcome.SUCCESS, StepOutcome.DEGRADED, StepOutcome.DEGRADED,
        ]
        assert report.steps[2].detail == "git exploded"
        assert report.steps[3].detail == "bad script"
        assert not report.fatal

    @pytest.mark.asyncio
    async def test_backup_disabled(self, tmp_path):
        operator = _make_operator(backup_enabled=False)
        handler = EmergencyHandler(ArtifactStore(PathsConfig(root=str(tmp_path))), operator)
        report = await _handle(handler)
        step = next(s for s in report.steps if s.step == STEP_BACKUP)
        assert step.outcome == StepOutcome.SUCCESS
        assert step.detail == "disabled"
        operator.backup_commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_git_missing_degrades_backup(self, tmp_path):
        operator = _make_operator(backup_result=None)
        handler = EmergencyHandler(ArtifactStore(PathsConfig(root=str(tmp_path))), operator)
        report = await _handle(handler)
        step = next(s for s in report.steps if s.step == STEP_BACKUP)
        assert step.outcome == StepOutcome.DEGRADED
        assert step.detail == "git not installed"

    @pytest.mark.asyncio
    async def test_failed_commit_degrades_backup(self, tmp_path):
        operator = _make_operator(backup_result=CommandResult(1, "nothing to commit", ""))
        handler = EmergencyHandler(ArtifactStore(PathsConfig(root=str(tmp_path))), operator)
        report = await _handle(handler)
        step = next(s for s in report.steps if s.step == STEP_BACKUP)
        assert step.outcome == StepOutcome.DEGRADED
        assert step.detail == "nothing to commit"

    @pytest.mark.asyncio
    async def test_missing_script_engages_fallback(self, tmp_path):
        deactivate = MagicMock()
        operator = _make_operator(script_exists=False)
        handler = EmergencyHandler(
            ArtifactStore(PathsConfig(root=str(tmp_path))), operator, deactivate=deactivate
        )
        report = await _handle(handler)

        assert report.fallback_engaged
        assert report.outcome_of(STEP_EMERGENCY_SCRIPT) == StepOutcome.DEGRADED
        deactivate.assert_called_once()
        operator.run_emergency_script.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failing_script_degrades(self, tmp_path):
        operator = _make_operator(script_result=CommandResult(2, "", "permission denied"))
        handler = EmergencyHandler(ArtifactStore(PathsConfig(root=str(tmp_path))), operator)
        report = await _handle(handler)
        step = next(s for s in report.steps if s.step == STEP_EMERGENCY_SCRIPT)
        assert step.outcome == StepOutcome.DEGRADED
        assert step.detail == "permission denied"
        assert not report.fallback_engaged
