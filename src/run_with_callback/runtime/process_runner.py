"""Process runner: spawn one command and drive it to completion.

run-with-callback runtime module

This module provides:
- Spawning a command with its arguments passed verbatim
- Non-blocking wait for the child's exit on the running event loop
- Classification of the exit into a ProcessOutcome for reporting
- A polite termination request for a child that is still running

Key design points:
- Standard streams are inherited from the supervisor (no pipes)
- The child stays in the supervisor's process group, so terminal and
  group-wide signals reach it the same way they reach the supervisor
- Outcomes are advisory: failures are logged and returned, never raised
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from enum import Enum

from ..commands import CommandSpec
from ..errors import SpawnError

__all__ = [
    "IS_WINDOWS",
    "OutcomeStatus",
    "ProcessOutcome",
    "ProcessRunner",
    "describe_returncode",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    WAIT_ERROR = "wait_error"
    SPAWN_ERROR = "spawn_error"


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of one Process Runner invocation.

    Attributes:
        command: Executable name, for reporting
        status: How the invocation ended
        returncode: Child return code (None if it never ran or the wait failed)
        detail: Human-readable status description
    """

    command: str
    status: OutcomeStatus
    returncode: int | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def failed(self) -> bool:
        """Child failure or wait failure (both are reported the same way)."""
        return self.status in (OutcomeStatus.FAILED, OutcomeStatus.WAIT_ERROR)

    @classmethod
    def from_returncode(cls, command: str, returncode: int) -> "ProcessOutcome":
        if returncode == 0:
            return cls(command, OutcomeStatus.SUCCESS, 0, describe_returncode(0))
        return cls(
            command, OutcomeStatus.FAILED, returncode, describe_returncode(returncode)
        )

    @classmethod
    def spawn_error(cls, error: SpawnError) -> "ProcessOutcome":
        return cls(
            error.command.executable,
            OutcomeStatus.SPAWN_ERROR,
            None,
            str(error.error),
        )


def describe_returncode(returncode: int) -> str:
    """Describe a return code the way a shell would report it.

    Negative codes on POSIX mean the child was killed by that signal.
    """
    if returncode < 0 and not IS_WINDOWS:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return f"terminated by signal {name}"
    return f"exit status {returncode}"


class ProcessRunner:
    """Spawns commands and waits for them without blocking the event loop.

    Example:
        runner = ProcessRunner()
        outcome = await runner.run(CommandSpec(("echo", "done")))
        if outcome.failed:
            ...
    """

    async def spawn(self, command: CommandSpec) -> asyncio.subprocess.Process:
        """Start ``command`` as a child of the supervisor.

        Args:
            command: Command to start

        Returns:
            The running child process

        Raises:
            SpawnError: If the OS refuses to start the executable
        """
        logger.info(f"spawn process for {command.executable}")
        try:
            process = await asyncio.create_subprocess_exec(*command.argv)
        except OSError as e:
            raise SpawnError(command, e) from e

        logger.debug(f"Started subprocess pid={process.pid} argv={list(command.argv)}")
        return process

    async def wait(
        self,
        process: asyncio.subprocess.Process,
        command: CommandSpec,
    ) -> ProcessOutcome:
        """Wait for ``process`` to exit and classify the result.

        Args:
            process: A child returned by spawn()
            command: The command it was started from, for reporting

        Returns:
            SUCCESS, FAILED or WAIT_ERROR outcome
        """
        name = command.executable
        try:
            returncode = await process.wait()
        except OSError as e:
            logger.error(f"Failed to wait on {name} process: {e}")
            outcome = ProcessOutcome(name, OutcomeStatus.WAIT_ERROR, None, str(e))
        else:
            outcome = ProcessOutcome.from_returncode(name, returncode)
            if outcome.ok:
                logger.info(f"{name} process finished")
            else:
                logger.warning(f"{name} process failed. status: {outcome.detail}")

        logger.info(f"{name} process terminated")
        return outcome

    async def run(self, command: CommandSpec) -> ProcessOutcome:
        """Spawn ``command`` and wait for it.

        Spawn failures are reported as a SPAWN_ERROR outcome instead of
        being raised.
        """
        try:
            process = await self.spawn(command)
        except SpawnError as e:
            logger.error(str(e))
            return ProcessOutcome.spawn_error(e)
        return await self.wait(process, command)

    def terminate(self, process: asyncio.subprocess.Process) -> bool:
        """Ask a running child to exit (SIGTERM, TerminateProcess on Windows).

        Returns:
            True if the request was delivered, False if the child had
            already exited
        """
        if process.returncode is not None:
            return False
        try:
            process.terminate()
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")
            return False
        logger.debug(f"Sent termination request to pid={process.pid}")
        return True
