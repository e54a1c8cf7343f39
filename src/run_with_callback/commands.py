"""Command line splitting into the main command and the callback command.

The raw argument list is cut on the ``--`` delimiter:

    run-with-callback sleep 30 -- echo cleanup

yields ``main=("sleep", "30")`` and ``callback=("echo", "cleanup")``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import UsageError

__all__ = [
    "DELIMITER",
    "CommandSpec",
    "CommandSet",
    "split_segments",
    "parse_command_line",
]

logger = logging.getLogger(__name__)

DELIMITER = "--"


@dataclass(frozen=True)
class CommandSpec:
    """An executable followed by its arguments, passed through verbatim.

    Attributes:
        argv: Command line (first element is the executable)
    """

    argv: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("CommandSpec requires at least an executable")
        # Accept any sequence, store an immutable copy
        object.__setattr__(self, "argv", tuple(self.argv))

    @property
    def executable(self) -> str:
        return self.argv[0]

    @property
    def args(self) -> tuple[str, ...]:
        return self.argv[1:]

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class CommandSet:
    """The main command and its optional callback.

    ``callback`` is None when the callback segment was left empty
    (``cmd --``); the signal branch then has nothing to run.
    """

    main: CommandSpec
    callback: CommandSpec | None = None


def split_segments(args: Sequence[str]) -> list[list[str]]:
    """Split ``args`` on every ``--`` token.

    Always returns ``len(delimiters) + 1`` segments, empty ones included.
    """
    segments: list[list[str]] = [[]]
    for arg in args:
        if arg == DELIMITER:
            segments.append([])
        else:
            segments[-1].append(arg)
    return segments


def parse_command_line(args: Sequence[str]) -> CommandSet:
    """Build the CommandSet from the arguments after the program name.

    Raises:
        UsageError: If there is no callback segment or the main segment
            is empty
    """
    segments = split_segments(args)

    if len(segments) < 2:
        raise UsageError(
            f"expected '<main-cmd> [args...] {DELIMITER} <callback-cmd> [args...]'"
        )

    main_argv, callback_argv = segments[0], segments[1]
    if not main_argv:
        raise UsageError(f"missing main command before '{DELIMITER}'")

    if len(segments) > 2:
        logger.warning(
            f"Only one callback is supported, ignoring {len(segments) - 2} "
            f"extra '{DELIMITER}' segment(s)"
        )

    return CommandSet(
        main=CommandSpec(tuple(main_argv)),
        callback=CommandSpec(tuple(callback_argv)) if callback_argv else None,
    )
