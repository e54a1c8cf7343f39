"""Runtime module for child process management.

This module spawns the supervised commands, waits for them on the event
loop and reports how each one ended.
"""

from __future__ import annotations

from .process_runner import OutcomeStatus, ProcessOutcome, ProcessRunner

__all__ = [
    "OutcomeStatus",
    "ProcessOutcome",
    "ProcessRunner",
]
