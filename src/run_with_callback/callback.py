"""Callback command execution, at most once per supervision session."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from .commands import CommandSpec
from .runtime import ProcessOutcome, ProcessRunner

__all__ = ["CallbackExecutor"]

logger = logging.getLogger(__name__)


class CallbackExecutor:
    """Runs the callback command when the termination branch is taken.

    A missing callback (empty segment) makes execute() a no-op. Only the
    first call runs anything; later calls return None.
    """

    def __init__(
        self,
        command: CommandSpec | None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.command = command
        self._runner = runner if runner is not None else ProcessRunner()
        self._executed = False
        self._task: asyncio.Task[ProcessOutcome] | None = None

    @property
    def executed(self) -> bool:
        """Whether a callback process was started."""
        return self._task is not None

    async def execute(self) -> ProcessOutcome | None:
        """Run the callback and wait for its outcome.

        Cancelling the caller does not abandon a callback that is already
        running: the cancellation is re-raised once the callback has
        finished.
        """
        if self._executed:
            logger.warning("Callback already executed, skipping")
            return None
        self._executed = True

        if self.command is None:
            logger.info("No callback command given, nothing to run")
            return None

        logger.info(f"running callback: {self.command}")
        self._task = asyncio.create_task(self._runner.run(self.command), name="callback")

        try:
            outcome = await asyncio.shield(self._task)
        except asyncio.CancelledError:
            logger.warning("Cancelled while the callback is running, waiting for it")
            # Stay shielded: repeated cancellation must not reach the callback task
            while not self._task.done():
                with contextlib.suppress(asyncio.CancelledError):
                    await asyncio.shield(self._task)
            raise

        if not outcome.ok:
            logger.warning(f"Callback {outcome.command} did not succeed: {outcome.detail}")
        return outcome
