"""
Tests for TestSuiteRunner.

Covers:
  - pytest verdict decides when pytest runs
  - "no tests" / "not installed" fall through to npm
  - npm only when package.json declares a test script
  - Timeout reported as an error
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from truthforge.clients.process import CommandResult
from truthforge.systems.evidence.test_runner import TestSuiteRunner

_RUN_COMMAND = "truthforge.systems.evidence.test_runner.run_command"


class TestTestSuiteRunner:
    @pytest.mark.asyncio
    async def test_pytest_pass(self, tmp_path):
        with patch(_RUN_COMMAND, AsyncMock(return_value=CommandResult(0, "3 passed", ""))):
            evidence = await TestSuiteRunner(tmp_path).collect()
        assert evidence.passed
        assert evidence.framework == "pytest"
        assert evidence.output == "3 passed"

    @pytest.mark.asyncio
    async def test_pytest_failure(self, tmp_path):
        with patch(_RUN_COMMAND, AsyncMock(return_value=CommandResult(1, "1 failed, 2 passed", ""))):
            evidence = await TestSuiteRunner(tmp_path).collect()
        assert not evidence.passed
        assert evidence.framework == "pytest"
        assert evidence.error == "1 failed, 2 passed"

    @pytest.mark.asyncio
    async def test_no_tests_falls_through_to_npm(self, tmp_path):
        (tmp_path / "package.json").write_text('{"scripts": {"test": "jest"}}')
        mock = AsyncMock(side_effect=[
            CommandResult(5, "no tests ran", ""),
            CommandResult(0, "Tests: 4 passed", ""),
        ])
        with patch(_RUN_COMMAND, mock):
            evidence = await TestSuiteRunner(tmp_path).collect()

        assert evidence.passed
        assert evidence.framework == "npm"
        assert mock.await_args_list[1].args == ("npm", "test")

    @pytest.mark.asyncio
    async def test_missing_pytest_module_falls_through(self, tmp_path):
        mock = AsyncMock(return_value=CommandResult(1, "", "No module named pytest"))
        with patch(_RUN_COMMAND, mock):
            evidence = await TestSuiteRunner(tmp_path).collect()
        assert not evidence.passed
        assert evidence.message == "No test framework detected or tests failed"
        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_package_json_without_test_script(self, tmp_path):
        (tmp_path / "package.json").write_text('{"scripts": {"build": "tsc"}}')
        mock = AsyncMock(return_value=None)
        with patch(_RUN_COMMAND, mock):
            evidence = await TestSuiteRunner(tmp_path).collect()
        assert not evidence.passed
        assert evidence.framework is None
        assert mock.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_reported(self, tmp_path):
        timed_out = CommandResult(-1, "", "", timed_out=True)
        with patch(_RUN_COMMAND, AsyncMock(return_value=timed_out)):
            evidence = await TestSuiteRunner(tmp_path, timeout_s=2.0).collect()
        assert not evidence.passed
        assert evidence.error == "Test suite timed out after 2.0s"

    @pytest.mark.asyncio
    async def test_output_tail_is_bounded(self, tmp_path):
        noisy = CommandResult(0, "x" * 10_000, "")
        with patch(_RUN_COMMAND, AsyncMock(return_value=noisy)):
            evidence = await TestSuiteRunner(tmp_path).collect()
        assert len(evidence.output) == 4000
