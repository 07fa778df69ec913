"""
TruthForge — Evidence Source Contract

Evidence sources are the sensory organs of the validation engine. Each
one observes one slice of reality and returns a structured record. The
engine never looks inside a source; it only needs the record and, when
the source breaks, a degraded record of the same schema.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

import structlog

from truthforge.errors import CollectorFailure
from truthforge.primitives.common import EvidenceModel, StepOutcome

logger = structlog.get_logger()

R = TypeVar("R", bound=EvidenceModel)


class EvidenceSource(ABC, Generic[R]):
    """
    Strategy base class for every evidence producer.

    Contract:
    - ``source_name`` is a stable identifier used in logs and reports.
    - ``collect()`` may raise; callers go through ``collect_safely`` which
      converts any failure or timeout into ``degraded(message)``.
    - ``degraded()`` must never raise and must return the source's own
      schema with ``status="error"``.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        ...

    @abstractmethod
    async def collect(self) -> R:
        """Observe reality once."""
        ...

    @abstractmethod
    def degraded(self, error: str) -> R:
        """The error-shaped record for this source."""
        ...


async def collect_safely(
    source: EvidenceSource[R],
    timeout_s: float,
) -> tuple[R, StepOutcome]:
    """
    Run one source under a timeout and contain its failure.

    A failing or stuck source degrades only its own record; it never
    aborts sibling sources.
    """
    log = logger.bind(system="evidence", source=source.source_name)
    try:
        record = await asyncio.wait_for(source.collect(), timeout=timeout_s)
        return record, StepOutcome.SUCCESS
    except TimeoutError:
        failure = CollectorFailure(source.source_name, f"timed out after {timeout_s}s")
    except Exception as exc:
        failure = CollectorFailure(source.source_name, str(exc) or type(exc).__name__)

    log.warning("evidence_source_failed", error=failure.message)
    return source.degraded(failure.message), StepOutcome.DEGRADED
