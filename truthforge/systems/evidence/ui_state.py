"""
TruthForge — UI State Source

Builds a picture of the project's user interface without driving a
browser: which HTML files exist, which UI frameworks the project
depends on, and which candidate UI ports have a server listening.

Screenshot capture is delegated to an optional collaborator; without
one the ``screenshots`` list stays empty.
"""

from __future__ import annotations

import asyncio
import tomllib
from pathlib import Path
from typing import Any, Protocol

import orjson
import psutil
import structlog

from truthforge.systems.evidence.base import EvidenceSource
from truthforge.systems.evidence.scanning import iter_files, read_text, relative
from truthforge.systems.evidence.types import ERROR_STATUS, UiElement, UiStateEvidence

logger = structlog.get_logger().bind(system="evidence", component="ui_state")

_UI_FRAMEWORKS: tuple[str, ...] = (
    "react", "vue", "angular", "svelte", "next", "nuxt",
    "streamlit", "gradio", "flask", "django", "fastapi", "nicegui",
)


class ScreenshotCapture(Protocol):
    async def capture(self, ports: list[int]) -> list[dict[str, Any]]:
        """Return one result dict per attempted capture, with a ``success`` key."""
        ...


class UiStateSource(EvidenceSource[UiStateEvidence]):
    def __init__(
        self,
        root: Path,
        ui_ports: list[int],
        excluded_dirs: list[str] | None = None,
        screenshots: ScreenshotCapture | None = None,
    ) -> None:
        self._root = root
        self._ui_ports = set(ui_ports)
        self._excluded = excluded_dirs or []
        self._screenshots = screenshots

    @property
    def source_name(self) -> str:
        return "ui_state"

    async def collect(self) -> UiStateEvidence:
        evidence = UiStateEvidence()

        try:
            html = await asyncio.to_thread(
                lambda: [relative(p, self._root) for p in iter_files(self._root, ["*.html"], self._excluded)]
            )
            evidence.elements.append(UiElement(type="html_files", count=len(html), files=html[:5]))
        except OSError as exc:
            evidence.errors.append({"type": "file_search_error", "message": str(exc)})

        try:
            frameworks = await asyncio.to_thread(self._detect_frameworks)
            if frameworks is not None:
                evidence.elements.append(UiElement(type="ui_frameworks", detected=frameworks))
        except (OSError, ValueError) as exc:
            evidence.errors.append({"type": "manifest_error", "message": str(exc)})

        try:
            ports = await asyncio.to_thread(self._listening_ui_ports)
        except (psutil.Error, OSError):
            evidence.errors.append(
                {"type": "network_check_error", "message": "Could not check for running servers"}
            )
            ports = []

        if ports:
            evidence.elements.append(
                UiElement(
                    type="running_servers",
                    ports=ports,
                    message="Potential UI servers detected",
                )
            )
            if self._screenshots is not None:
                await self._capture_screenshots(self._screenshots, evidence, ports)

        logger.debug(
            "ui_state_collected",
            elements=len(evidence.elements),
            errors=len(evidence.errors),
        )
        return evidence

    def degraded(self, error: str) -> UiStateEvidence:
        return UiStateEvidence(
            status=ERROR_STATUS,
            error=error,
            errors=[{"type": "validation_error", "message": error}],
        )

    async def _capture_screenshots(
        self,
        capture: ScreenshotCapture,
        evidence: UiStateEvidence,
        ports: list[int],
    ) -> None:
        try:
            results = await capture.capture(ports)
        except Exception as exc:
            evidence.errors.append({"type": "screenshot_capture_error", "message": str(exc)})
            return
        evidence.screenshots = [r for r in results if r.get("success")]
        failures = [r for r in results if not r.get("success")]
        if failures:
            evidence.errors.append({"type": "screenshot_errors", "failures": failures})

    def _detect_frameworks(self) -> list[str] | None:
        """Dependency names from package.json / pyproject.toml, or None if neither exists."""
        deps: list[str] = []
        seen_manifest = False

        package_json = self._root / "package.json"
        if package_json.exists():
            seen_manifest = True
            data = orjson.loads(read_text(package_json))
            deps.extend(data.get("dependencies", {}) or {})
            deps.extend(data.get("devDependencies", {}) or {})

        pyproject = self._root / "pyproject.toml"
        if pyproject.exists():
            seen_manifest = True
            data = tomllib.loads(read_text(pyproject))
            deps.extend(data.get("project", {}).get("dependencies", []) or [])

        if not seen_manifest:
            return None
        lowered = [d.lower() for d in deps]
        return [fw for fw in _UI_FRAMEWORKS if any(fw in d for d in lowered)]

    def _listening_ui_ports(self) -> list[int]:
        ports = {
            conn.laddr.port
            for conn in psutil.net_connections(kind="inet")
            if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port in self._ui_ports
        }
        return sorted(ports)
