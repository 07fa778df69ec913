"""
TruthForge — Operator Actions

Side effects the emergency protocol asks of the host: a best-effort git
backup commit and the project's emergency-stop script.
"""

from __future__ import annotations

import os
from pathlib import Path

import structlog

from truthforge.clients.process import CommandResult, run_command
from truthforge.config import BackupConfig, PathsConfig

logger = structlog.get_logger().bind(system="clients", component="operator")


class OperatorActions:
    def __init__(self, paths: PathsConfig, backup: BackupConfig) -> None:
        self._root = Path(paths.root)
        self._script = paths.resolve(paths.emergency_script).resolve()
        self._backup = backup

    @property
    def backup_enabled(self) -> bool:
        return self._backup.enabled

    @property
    def emergency_script(self) -> Path:
        return self._script

    async def backup_commit(self) -> CommandResult | None:
        """
        ``git add .`` then ``git commit``. Returns the commit's result, the
        failing ``add`` result, or None when git is not installed.
        """
        added = await run_command("git", "add", ".", cwd=self._root, timeout_s=self._backup.timeout_s)
        if added is None or not added.ok:
            return added
        return await run_command(
            "git", "commit", "-m", self._backup.commit_message,
            cwd=self._root, timeout_s=self._backup.timeout_s,
        )

    def emergency_script_exists(self) -> bool:
        return self._script.is_file()

    async def run_emergency_script(self) -> CommandResult | None:
        logger.warning("emergency_script_started", script=str(self._script))
        if not os.access(self._script, os.X_OK):
            return await run_command("sh", str(self._script), cwd=self._root, timeout_s=self._backup.timeout_s)
        return await run_command(str(self._script), cwd=self._root, timeout_s=self._backup.timeout_s)
