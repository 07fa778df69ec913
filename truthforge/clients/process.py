"""
TruthForge — Subprocess Runner

Thin async wrapper over ``asyncio.create_subprocess_exec`` shared by the
dependency audit, the test runner and the operator actions. Every call is
bounded by a timeout; a stuck or cancelled process is killed and reaped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger().bind(system="clients", component="process")


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return self.stdout if self.stdout.strip() else self.stderr


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    timeout_s: float = 30.0,
) -> CommandResult | None:
    """
    Run ``args`` and capture its output.

    Returns None when the executable is not installed. A timeout yields a
    result with ``timed_out=True`` and return code -1.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
        )
    except FileNotFoundError:
        logger.debug("command_not_installed", command=args[0])
        return None

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except TimeoutError:
        await _kill(proc)
        logger.warning("command_timeout", command=args[0], timeout_s=timeout_s)
        return CommandResult(returncode=-1, stdout="", stderr="", timed_out=True)
    except BaseException:
        # Cancelled from outside (e.g. an enclosing wait_for)
        await _kill(proc)
        logger.warning("command_cancelled", command=args[0])
        raise

    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill ``proc`` if it is still running and reap it."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()
