"""Main command supervision.

Provides:
- CompletionSignal: one-shot "the main command has terminated" notice
- CommandSupervisor: spawns the main command, waits for it and fires the
  CompletionSignal exactly once
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from .commands import CommandSpec
from .errors import SpawnError
from .runtime import ProcessOutcome, ProcessRunner

__all__ = ["CompletionSignal", "CommandSupervisor", "SupervisorState"]

logger = logging.getLogger(__name__)


class SupervisorState(str, Enum):
    IDLE = "idle"
    SPAWNED = "spawned"
    WAITING = "waiting"
    TERMINATED = "terminated"


class CompletionSignal:
    """Single-producer/single-consumer one-shot notification.

    The producer either sends one ProcessOutcome or closes the signal
    without a value; the consumer reads it once. Closing without a value
    is a valid "supervision ended" notice, not an error.

    Must be used from within a running event loop.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[ProcessOutcome | None] | None = None
        self._consumed = False

    def _get_future(self) -> asyncio.Future[ProcessOutcome | None]:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def fired(self) -> bool:
        """Whether a value was sent or the signal was closed."""
        return self._future is not None and self._future.done()

    @property
    def consumed(self) -> bool:
        return self._consumed

    def send(self, outcome: ProcessOutcome) -> None:
        """Fire the signal with ``outcome``.

        Raises:
            RuntimeError: If the signal already fired or was closed
        """
        future = self._get_future()
        if future.done():
            raise RuntimeError("completion signal already fired")
        future.set_result(outcome)

    def close(self) -> None:
        """Resolve the signal with no value if it has not fired yet."""
        future = self._get_future()
        if not future.done():
            future.set_result(None)

    async def wait(self) -> ProcessOutcome | None:
        """Wait for the signal and return its value (None if closed).

        Raises:
            RuntimeError: If the signal was already read
        """
        if self._consumed:
            raise RuntimeError("completion signal already consumed")
        self._consumed = True
        # Shielded so a cancelled reader leaves the future usable for send()
        return await asyncio.shield(self._get_future())


class CommandSupervisor:
    """Owns the main command from spawn to termination notice.

    State machine: IDLE -> SPAWNED -> WAITING -> TERMINATED. A spawn
    failure goes straight from IDLE to TERMINATED and still fires the
    CompletionSignal, carrying a SPAWN_ERROR outcome.

    Example:
        supervisor = CommandSupervisor(CommandSpec(("sleep", "5")))
        supervisor.start()
        outcome = await supervisor.completion.wait()
    """

    def __init__(
        self,
        command: CommandSpec,
        runner: ProcessRunner | None = None,
        completion: CompletionSignal | None = None,
    ) -> None:
        self.command = command
        self.completion = completion if completion is not None else CompletionSignal()
        self._runner = runner if runner is not None else ProcessRunner()
        self._state = SupervisorState.IDLE
        self._process: asyncio.subprocess.Process | None = None
        self._outcome: ProcessOutcome | None = None
        self._task: asyncio.Task[ProcessOutcome] | None = None
        self._spawn_settled = asyncio.Event()

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def outcome(self) -> ProcessOutcome | None:
        return self._outcome

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def task(self) -> asyncio.Task[ProcessOutcome] | None:
        return self._task

    def start(self) -> asyncio.Task[ProcessOutcome]:
        """Run supervise() as a background task.

        Whatever way the task ends (including cancellation), its
        completion also closes the CompletionSignal.
        """
        if self._task is not None:
            raise RuntimeError("supervisor already started")
        self._task = asyncio.create_task(self.supervise(), name="main-command")
        self._task.add_done_callback(self._on_task_done)
        return self._task

    def _on_task_done(self, task: asyncio.Task[ProcessOutcome]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Supervision of {self.command.executable} failed: {task.exception()!r}")
        if not self.completion.fired:
            logger.debug("Supervision task ended before the main command reported")
        self.completion.close()

    def _set_state(self, state: SupervisorState) -> None:
        logger.debug(f"Supervisor {self._state.value} -> {state.value}")
        self._state = state

    async def supervise(self) -> ProcessOutcome:
        """Spawn the main command, wait for it and fire the CompletionSignal."""
        if self._state is not SupervisorState.IDLE:
            raise RuntimeError(f"cannot supervise from state {self._state.value}")

        logger.info(f"running main: {self.command}")
        try:
            self._process = await self._runner.spawn(self.command)
        except SpawnError as e:
            logger.error(f"{e}. Nothing to supervise.")
            return self._finish(ProcessOutcome.spawn_error(e))
        finally:
            self._spawn_settled.set()

        self._set_state(SupervisorState.SPAWNED)
        self._set_state(SupervisorState.WAITING)

        outcome = await self._runner.wait(self._process, self.command)
        return self._finish(outcome)

    def _finish(self, outcome: ProcessOutcome) -> ProcessOutcome:
        self._outcome = outcome
        self._set_state(SupervisorState.TERMINATED)
        self.completion.send(outcome)
        return outcome

    def terminate(self) -> bool:
        """Forward a termination request to the main command if it still runs.

        Returns:
            True if a request was delivered
        """
        if self._process is None or self._state is SupervisorState.TERMINATED:
            return False
        return self._runner.terminate(self._process)

    async def wait_spawned(self, timeout: float | None = None) -> bool:
        """Wait up to ``timeout`` seconds for the spawn attempt to settle.

        Returns:
            True once the main command was spawned or failed to spawn,
            False if supervision was never started or the wait timed out
        """
        if self._task is None:
            return False
        if self._task.done():
            return self._spawn_settled.is_set()
        try:
            await asyncio.wait_for(self._spawn_settled.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def join(self, timeout: float | None = None) -> bool:
        """Wait up to ``timeout`` seconds for supervision to end.

        Does not cancel the supervision task on timeout.

        Returns:
            True if supervision has ended
        """
        if self._task is None:
            return self._state is SupervisorState.TERMINATED
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        return bool(done)
