"""
TruthForge — Claim Ledger & Reality Recorder

The two append-only logs the engine compares:
  ClaimLedger      — what the agent says should be true
  RealityRecorder  — what the evidence sources observed

Both are owned by one ValidationService instance and live only as long
as it does.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from truthforge.primitives.common import utc_now
from truthforge.systems.evidence.base import EvidenceSource, collect_safely
from truthforge.systems.evidence.types import (
    ApiHealthEvidence,
    DatabaseStateEvidence,
    PerformanceEvidence,
    UiStateEvidence,
)
from truthforge.systems.validation.types import Claim, RealitySnapshot

logger = structlog.get_logger()

Clock = Callable[[], datetime]


class ClaimLedger:
    """Append-only list of claims. Never validates the expectation's shape."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._claims: list[Claim] = []
        self._clock = clock
        self._logger = logger.bind(system="validation", component="ledger")

    def record(self, feature: str, expected: dict[str, Any]) -> Claim:
        claim = Claim(feature=feature, expected=expected, timestamp=self._clock())
        self._claims.append(claim)
        self._logger.info(
            "claim_recorded",
            claim_id=claim.id,
            feature=feature,
            category=claim.category,
        )
        return claim

    @property
    def claims(self) -> list[Claim]:
        return list(self._claims)

    def __len__(self) -> int:
        return len(self._claims)


class RealityRecorder:
    """
    Captures reality snapshots from the four state sources.

    Captures are refused (``None``) until the recorder is activated. One
    capture runs the sources concurrently; each source is bounded by the
    probe timeout and degrades on its own. The snapshot is stamped with
    the capture start time and appended only after every source returned.
    """

    def __init__(
        self,
        api: EvidenceSource[ApiHealthEvidence],
        ui: EvidenceSource[UiStateEvidence],
        database: EvidenceSource[DatabaseStateEvidence],
        performance: EvidenceSource[PerformanceEvidence],
        timeout_s: float = 5.0,
        clock: Clock = utc_now,
    ) -> None:
        self._api = api
        self._ui = ui
        self._database = database
        self._performance = performance
        self._timeout_s = timeout_s
        self._clock = clock
        self._snapshots: list[RealitySnapshot] = []
        self._active = False
        self._logger = logger.bind(system="validation", component="recorder")

    @property
    def active(self) -> bool:
        return self._active

    def activate(self) -> None:
        self._active = True

    def deactivate(self) -> None:
        self._active = False

    @property
    def snapshots(self) -> list[RealitySnapshot]:
        return list(self._snapshots)

    def __len__(self) -> int:
        return len(self._snapshots)

    async def capture(self) -> RealitySnapshot | None:
        if not self._active:
            self._logger.debug("capture_skipped_inactive")
            return None

        started_at = self._clock()
        (api, api_out), (ui, ui_out), (db, db_out), (perf, perf_out) = await asyncio.gather(
            collect_safely(self._api, self._timeout_s),
            collect_safely(self._ui, self._timeout_s),
            collect_safely(self._database, self._timeout_s),
            collect_safely(self._performance, self._timeout_s),
        )

        snapshot = RealitySnapshot(
            timestamp=started_at,
            api_responses=api,
            ui_elements=ui,
            database_state=db,
            performance=perf,
        )
        self._snapshots.append(snapshot)

        self._logger.info(
            "reality_captured",
            snapshot_id=snapshot.id,
            api=api_out.value,
            ui=ui_out.value,
            database=db_out.value,
            performance=perf_out.value,
        )
        return snapshot

    def record(self, snapshot: RealitySnapshot) -> RealitySnapshot:
        """Append a snapshot assembled outside the recorder."""
        self._snapshots.append(snapshot)
        return snapshot
