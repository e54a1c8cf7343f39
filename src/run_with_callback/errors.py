"""run-with-callback 异常类。

UsageError 与主命令的 SpawnError 是仅有的会阻止正常监督流程的错误；
子进程失败与 wait 失败不是异常，而是 ProcessOutcome 中的状态。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .commands import CommandSpec

__all__ = [
    "RunWithCallbackError",
    "UsageError",
    "SpawnError",
]


class RunWithCallbackError(Exception):
    """run-with-callback 基础异常。"""
    pass


class UsageError(RunWithCallbackError):
    """命令行参数错误（如缺少 `--` 分隔的回调段）。"""
    pass


class SpawnError(RunWithCallbackError):
    """操作系统拒绝启动命令（找不到可执行文件、权限不足等）。

    Attributes:
        command: 启动失败的命令
        error: 底层 OSError
    """

    def __init__(self, command: "CommandSpec", error: OSError) -> None:
        self.command = command
        self.error = error
        super().__init__(f"Failed to start {command.executable}: {error}")
