"""
Tests for the subprocess runner and operator actions.

Covers:
  - run_command output capture, missing executable, timeout, outer cancellation
  - OperatorActions git backup sequencing and emergency script execution
"""

from __future__ import annotations

import asyncio
import os
from unittest.mock import AsyncMock, patch

import pytest

from truthforge.clients.operator import OperatorActions
from truthforge.clients.process import CommandResult, run_command
from truthforge.config import BackupConfig, PathsConfig


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_captures_output(self, tmp_path):
        result = await run_command("sh", "-c", "echo out; echo err >&2; exit 3", cwd=tmp_path)
        assert result.returncode == 3
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"
        assert not result.ok
        assert result.output.strip() == "out"

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        assert await run_command("definitely-not-a-real-binary-xyz") is None

    @pytest.mark.asyncio
    async def test_timeout_kills(self):
        result = await run_command("sleep", "5", timeout_s=0.1)
        assert result.timed_out
        assert result.returncode == -1
        assert not result.ok

    @pytest.mark.asyncio
    async def test_outer_cancellation_kills_child(self, tmp_path):
        pid_file = tmp_path / "child.pid"
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(
                run_command("sh", "-c", f"echo $$ > {pid_file}; exec sleep 30", timeout_s=60),
                timeout=0.5,
            )

        pid = int(pid_file.read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    def test_output_falls_back_to_stderr(self):
        assert CommandResult(1, "  \n", "boom").output == "boom"


_RUN_COMMAND = "truthforge.clients.operator.run_command"


class TestOperatorActions:
    def _make(self, tmp_path, **backup) -> OperatorActions:
        return OperatorActions(PathsConfig(root=str(tmp_path)), BackupConfig(**backup))

    @pytest.mark.asyncio
    async def test_backup_add_then_commit(self, tmp_path):
        mock = AsyncMock(return_value=CommandResult(0, "", ""))
        with patch(_RUN_COMMAND, mock):
            result = await self._make(tmp_path, commit_message="auto").backup_commit()

        assert result.ok
        assert [c.args for c in mock.await_args_list] == [
            ("git", "add", "."),
            ("git", "commit", "-m", "auto"),
        ]

    @pytest.mark.asyncio
    async def test_backup_stops_when_add_fails(self, tmp_path):
        failed = CommandResult(128, "", "not a git repository")
        mock = AsyncMock(return_value=failed)
        with patch(_RUN_COMMAND, mock):
            result = await self._make(tmp_path).backup_commit()
        assert result is failed
        assert mock.await_count == 1

    def test_emergency_script_lookup(self, tmp_path):
        operator = self._make(tmp_path)
        assert operator.emergency_script == (tmp_path / "emergency-stop.sh").resolve()
        assert not operator.emergency_script_exists()
        (tmp_path / "emergency-stop.sh").write_text("#!/bin/sh\n")
        assert operator.emergency_script_exists()

    @pytest.mark.asyncio
    async def test_runs_non_executable_script_through_sh(self, tmp_path):
        script = tmp_path / "emergency-stop.sh"
        script.write_text("echo stopped > stopped.txt\n")
        script.chmod(0o644)

        result = await self._make(tmp_path).run_emergency_script()
        assert result.ok
        assert (tmp_path / "stopped.txt").read_text().strip() == "stopped"

    @pytest.mark.asyncio
    async def test_runs_executable_script_directly(self, tmp_path):
        script = tmp_path / "emergency-stop.sh"
        script.write_text("#!/bin/sh\nexit 4\n")
        script.chmod(0o755)

        result = await self._make(tmp_path).run_emergency_script()
        assert result.returncode == 4
