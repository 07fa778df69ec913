"""
TruthForge — Performance Source

System pressure (memory, CPU load) via psutil plus three micro-benchmarks:
  file_io          — 10KB write/read/delete in a temp directory
  cpu_calculation  — 100k square roots
  local_http       — first local server that answers (only recorded when one does)

Overall status:
  poor     — memory > 85% or 1-minute load > 0.8 x cores
  degraded — memory > 70% or 1-minute load > 0.6 x cores
  good     — otherwise
"""

from __future__ import annotations

import asyncio
import math
import os
import tempfile
import time

import httpx
import psutil
import structlog

from truthforge.systems.evidence.base import EvidenceSource
from truthforge.systems.evidence.types import (
    ERROR_STATUS,
    Benchmark,
    CpuMetrics,
    MemoryMetrics,
    PerformanceEvidence,
    SystemMetrics,
)

logger = structlog.get_logger().bind(system="evidence", component="performance")

_MB = 1024 * 1024


def classify_performance(memory_percent: float, load_1m: float, cores: int) -> str:
    if memory_percent > 85 or load_1m > cores * 0.8:
        return "poor"
    if memory_percent > 70 or load_1m > cores * 0.6:
        return "degraded"
    return "good"


class PerformanceSource(EvidenceSource[PerformanceEvidence]):
    def __init__(
        self,
        benchmark_urls: list[str],
        http_timeout_s: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._benchmark_urls = benchmark_urls
        self._http_timeout_s = http_timeout_s
        self._transport = transport

    @property
    def source_name(self) -> str:
        return "performance"

    async def collect(self) -> PerformanceEvidence:
        system = await asyncio.to_thread(self._system_metrics)

        benchmarks = [
            await asyncio.to_thread(self._file_io_benchmark),
            self._cpu_benchmark(),
        ]
        http = await self._http_benchmark()
        if http is not None:
            benchmarks.append(http)

        memory = system.memory or MemoryMetrics()
        cpu = system.cpu or CpuMetrics()
        status = classify_performance(memory.percentage, cpu.load_average[0], cpu.cores)
        logger.debug("performance_collected", overall_status=status, benchmarks=len(benchmarks))
        return PerformanceEvidence(system=system, benchmarks=benchmarks, overall_status=status)

    def degraded(self, error: str) -> PerformanceEvidence:
        return PerformanceEvidence(status=ERROR_STATUS, error=error)

    @staticmethod
    def _system_metrics() -> SystemMetrics:
        mem = psutil.virtual_memory()
        return SystemMetrics(
            memory=MemoryMetrics(
                total_mb=round(mem.total / _MB),
                free_mb=round(mem.available / _MB),
                used_mb=round((mem.total - mem.available) / _MB),
                percentage=round(mem.percent),
            ),
            cpu=CpuMetrics(
                cores=psutil.cpu_count() or 1,
                load_average=list(psutil.getloadavg()),
            ),
            uptime_s=round(time.time() - psutil.boot_time()),
        )

    @staticmethod
    def _file_io_benchmark() -> Benchmark:
        start = time.perf_counter()
        try:
            with tempfile.TemporaryDirectory(prefix="truthforge-") as tmp:
                path = os.path.join(tmp, "benchmark.txt")
                with open(path, "w") as f:
                    f.write("x" * 10_000)
                with open(path) as f:
                    f.read()
                os.unlink(path)
        except OSError as exc:
            return Benchmark(name="file_io", error=str(exc), description="File I/O benchmark failed")
        return Benchmark(
            name="file_io",
            duration=round((time.perf_counter() - start) * 1000, 3),
            description="10KB file write/read/delete",
        )

    @staticmethod
    def _cpu_benchmark() -> Benchmark:
        start = time.perf_counter()
        total = sum(math.sqrt(i) for i in range(100_000))
        return Benchmark(
            name="cpu_calculation",
            duration=round((time.perf_counter() - start) * 1000, 3),
            description="100k square root calculations",
            result=round(total),
        )

    async def _http_benchmark(self) -> Benchmark | None:
        async with httpx.AsyncClient(timeout=self._http_timeout_s, transport=self._transport) as client:
            for url in self._benchmark_urls:
                start = time.perf_counter()
                try:
                    await client.get(url)
                except httpx.HTTPError:
                    continue
                return Benchmark(
                    name="local_http",
                    duration=round((time.perf_counter() - start) * 1000, 3),
                    description="Local HTTP server response",
                    url=url,
                )
        return None
