"""
TruthForge — API Health Source

Probes a configured list of HTTP endpoints and reports per-endpoint
status codes plus an overall verdict:
  healthy  — every endpoint answered with 2xx/3xx
  degraded — some endpoints failed
  critical — every endpoint failed
"""

from __future__ import annotations

import time

import httpx
import structlog

from truthforge.primitives.common import HealthStatus
from truthforge.systems.evidence.base import EvidenceSource
from truthforge.systems.evidence.types import (
    ERROR_STATUS,
    ApiHealthEvidence,
    EndpointObservation,
)

logger = structlog.get_logger().bind(system="evidence", component="api_health")


class ApiHealthSource(EvidenceSource[ApiHealthEvidence]):
    def __init__(
        self,
        endpoints: list[str],
        timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoints = endpoints
        self._timeout_s = timeout_s
        # Injectable for tests (httpx.MockTransport)
        self._transport = transport

    @property
    def source_name(self) -> str:
        return "api_health"

    async def collect(self) -> ApiHealthEvidence:
        observations: list[EndpointObservation] = []
        async with httpx.AsyncClient(
            timeout=self._timeout_s, transport=self._transport
        ) as client:
            for url in self._endpoints:
                observations.append(await self._probe(client, url))

        healthy = [o for o in observations if o.healthy]
        status = HealthStatus.HEALTHY
        if observations and not healthy:
            status = HealthStatus.CRITICAL
        elif len(healthy) < len(observations):
            status = HealthStatus.DEGRADED

        logger.debug(
            "api_health_collected",
            endpoints=len(observations),
            healthy=len(healthy),
            status=status.value,
        )
        return ApiHealthEvidence(status=status.value, endpoints=observations)

    def degraded(self, error: str) -> ApiHealthEvidence:
        return ApiHealthEvidence(status=ERROR_STATUS, endpoints=[], error=error)

    async def _probe(self, client: httpx.AsyncClient, url: str) -> EndpointObservation:
        start = time.monotonic()
        try:
            resp = await client.get(url)
        except httpx.HTTPError as exc:
            return EndpointObservation(
                url=url,
                status=0,
                healthy=False,
                error=f"Connection failed: {type(exc).__name__}",
            )
        return EndpointObservation(
            url=url,
            status=resp.status_code,
            healthy=200 <= resp.status_code < 400,
            response_time_ms=round((time.monotonic() - start) * 1000, 2),
        )
