"""
TruthForge — Artifact Store

Every file the engine writes goes through here:
  token           — proof of the most recent passing run (overwritten)
  reports         — one JSON report per run (never overwritten, never pruned)
  security report — detailed + summary security reports per run
  failure memory  — cumulative divergence patterns across runs
  incident log    — snapshot written when the emergency protocol fires

Writes are plain overwrites with no cross-process locking.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson
import structlog

from truthforge.config import PathsConfig
from truthforge.errors import EmergencyProtocolFailure, PersistenceFailure
from truthforge.primitives.common import new_id, to_json_bytes, utc_now
from truthforge.systems.evidence.types import SecurityEvidence

if TYPE_CHECKING:
    from truthforge.systems.validation.types import (
        Claim,
        Divergence,
        RealitySnapshot,
        ValidationResult,
        ValidationToken,
    )

logger = structlog.get_logger().bind(system="clients", component="artifacts")

_MAX_NAME_ATTEMPTS = 1000


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def _empty_failure_memory() -> dict[str, Any]:
    return {
        "patterns": [],
        "statistics": {"total_failures_prevented": 0},
        "last_updated": None,
    }


def _check_failure_memory(memory: Any) -> dict[str, Any]:
    """Reject a failure-memory document whose known keys have the wrong shape."""
    if not isinstance(memory, dict):
        raise ValueError("failure memory is not a JSON object")
    if not isinstance(memory.get("patterns", []), list):
        raise ValueError("failure memory patterns is not a list")
    stats = memory.get("statistics", {})
    if not isinstance(stats, dict):
        raise ValueError("failure memory statistics is not an object")
    total = stats.get("total_failures_prevented", 0)
    if isinstance(total, bool) or not isinstance(total, int):
        raise ValueError(f"total_failures_prevented is not an integer: {total!r}")
    return memory


class ArtifactStore:
    def __init__(self, paths: PathsConfig) -> None:
        self._paths = paths

    @property
    def token_path(self) -> Path:
        return self._paths.resolve(self._paths.token_file)

    @property
    def incident_log_path(self) -> Path:
        return self._paths.resolve(self._paths.emergency_log_file)

    @property
    def failure_memory_path(self) -> Path:
        return self._paths.resolve(self._paths.failure_memory_file)

    # ─── Token ───────────────────────────────────────────────────

    def write_token(self, token: ValidationToken) -> Path:
        path = self.token_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(to_json_bytes(token, indent=True))
        except OSError as exc:
            raise PersistenceFailure(f"could not write validation token {path}: {exc}") from exc
        logger.info("token_written", path=str(path))
        return path

    def read_token(self) -> ValidationToken | None:
        from truthforge.systems.validation.types import ValidationToken

        path = self.token_path
        if not path.exists():
            return None
        try:
            return ValidationToken.model_validate(orjson.loads(path.read_bytes()))
        except (OSError, ValueError) as exc:
            logger.warning("token_unreadable", path=str(path), error=str(exc))
            return None

    # ─── Reports ─────────────────────────────────────────────────

    def write_report(self, result: ValidationResult) -> Path:
        directory = self._paths.resolve(self._paths.report_dir)
        try:
            path = self._write_unique(directory, "validation-report", to_json_bytes(result, indent=True))
        except OSError as exc:
            raise PersistenceFailure(f"could not write validation report in {directory}: {exc}") from exc
        logger.info("report_written", path=str(path))
        return path

    def write_security_report(self, evidence: SecurityEvidence) -> Path:
        directory = self._paths.resolve(self._paths.security_report_dir)
        summary = {
            "timestamp": evidence.timestamp,
            "score": evidence.overall_score,
            "status": evidence.overall_status,
            "total_vulnerabilities": len(evidence.vulnerabilities),
            "critical_vulnerabilities": sum(1 for v in evidence.vulnerabilities if v.severity == "critical"),
            "high_vulnerabilities": sum(1 for v in evidence.vulnerabilities if v.severity == "high"),
            "recommendations": evidence.recommendations[:5],
        }
        try:
            path = self._write_unique(directory, "security-report", to_json_bytes(evidence, indent=True))
            self._write_unique(directory, "security-summary", to_json_bytes(summary, indent=True))
        except OSError as exc:
            raise PersistenceFailure(f"could not write security report in {directory}: {exc}") from exc
        return path

    @staticmethod
    def _write_unique(directory: Path, prefix: str, payload: bytes) -> Path:
        """Create ``<prefix>-<epoch_ms>.json``, adding ``-N`` until the name is free."""
        directory.mkdir(parents=True, exist_ok=True)
        stem = f"{prefix}-{_epoch_ms()}"
        for attempt in range(_MAX_NAME_ATTEMPTS):
            name = f"{stem}.json" if attempt == 0 else f"{stem}-{attempt}.json"
            path = directory / name
            try:
                with open(path, "xb") as f:
                    f.write(payload)
            except FileExistsError:
                continue
            return path
        raise FileExistsError(f"no free report name for {stem} in {directory}")

    # ─── Failure memory ──────────────────────────────────────────

    def append_failure_memory(self, divergences: Sequence[Divergence]) -> int:
        """Append one pattern per divergence. Returns the new cumulative total."""
        path = self.failure_memory_path
        try:
            if path.exists():
                memory = _check_failure_memory(orjson.loads(path.read_bytes()))
            else:
                memory = _empty_failure_memory()

            now = utc_now().isoformat()
            for divergence in divergences:
                claim = to_json_bytes(divergence.claim).decode()
                reality = to_json_bytes(divergence.reality).decode()
                memory.setdefault("patterns", []).append({
                    "id": f"failure-{new_id()}",
                    "date": now,
                    "description": f"Claim: {claim} vs Reality: {reality}",
                    "severity": divergence.severity.model_dump(mode="json"),
                })

            stats = memory.setdefault("statistics", {})
            stats["total_failures_prevented"] = stats.get("total_failures_prevented", 0) + len(divergences)
            memory["last_updated"] = now

            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(to_json_bytes(memory, indent=True))
        except (OSError, ValueError, TypeError) as exc:
            raise PersistenceFailure(f"could not update failure memory {path}: {exc}") from exc

        logger.info("failure_memory_updated", path=str(path), added=len(divergences))
        return int(stats["total_failures_prevented"])

    # ─── Incident log ────────────────────────────────────────────

    def write_incident_log(
        self,
        claims: Sequence[Claim],
        snapshots: Sequence[RealitySnapshot],
    ) -> Path:
        path = self.incident_log_path
        incident = {
            "timestamp": utc_now(),
            "event": "catastrophic_failure_detected",
            "claims": [c.model_dump(mode="json", by_alias=True) for c in claims],
            "reality": [s.model_dump(mode="json", by_alias=True) for s in snapshots],
            "action": "emergency_protocol_triggered",
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(to_json_bytes(incident, indent=True))
        except OSError as exc:
            raise EmergencyProtocolFailure(f"could not write incident log {path}: {exc}") from exc
        return path
