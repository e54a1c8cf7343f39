"""run-with-callback 应用入口。

包含监督会话的生命周期管理和主入口点。

用法:
    run-with-callback <main-cmd> [args...] -- <callback-cmd> [args...]
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import Optional

from . import __version__
from .callback import CallbackExecutor
from .commands import CommandSet, parse_command_line
from .config import Config, get_config
from .coordinator import RaceResult, TerminationRaceCoordinator
from .errors import UsageError
from .runtime import OutcomeStatus, ProcessRunner
from .signal_source import SignalManager, TerminationSignalSource
from .supervisor import CommandSupervisor

__all__ = ["run_supervisor", "configure_logging", "main", "USAGE"]

logger = logging.getLogger(__name__)

PROG = "run-with-callback"

USAGE = f"""\
usage: {PROG} <main-cmd> [args...] -- <callback-cmd> [args...]

Run <main-cmd> until it exits. If {PROG} receives a termination signal
(SIGTERM; Ctrl+C on Windows) first, run <callback-cmd> once before exiting.
"""

# 退出码（仅供参考，不是稳定接口）
EXIT_OK = 0
EXIT_SPAWN_ERROR = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130  # 128 + SIGINT(2)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


async def run_supervisor(
    command_set: CommandSet,
    *,
    config: Optional[Config] = None,
    signal_source: Optional[TerminationSignalSource] = None,
    runner: Optional[ProcessRunner] = None,
) -> int:
    """运行一次监督会话。

    并发任务架构：
    - main-command: 监督主命令直到其退出
    - termination-signal: 监听终止信号
    - main-completion: 等待 CompletionSignal
    协调器等待后两者中的先到者。

    Args:
        command_set: 主命令与回调命令
        config: 配置（默认读取全局配置）
        signal_source: 终止信号源（默认使用 OS 信号）
        runner: 进程启动器（主命令与回调共用）

    Returns:
        退出码
    """
    config = config if config is not None else get_config()
    runner = runner if runner is not None else ProcessRunner()
    signal_source = signal_source if signal_source is not None else SignalManager()

    supervisor = CommandSupervisor(command_set.main, runner=runner)
    coordinator = TerminationRaceCoordinator(
        supervisor,
        signal_source,
        CallbackExecutor(command_set.callback, runner=runner),
        main_on_signal=config.main_on_signal,
        terminate_grace=config.terminate_grace,
    )

    # 先安装信号处理器，再启动主命令
    await signal_source.start()
    try:
        supervisor.start()
        result = await coordinator.race()
    finally:
        await signal_source.stop()

    outcome = supervisor.outcome
    if (
        result is RaceResult.COMPLETED
        and outcome is not None
        and outcome.status is OutcomeStatus.SPAWN_ERROR
    ):
        return EXIT_SPAWN_ERROR
    return EXIT_OK


def configure_logging(config: Config) -> None:
    """配置日志输出。

    - 默认：INFO 级别输出到 stderr
    - RWC_LOG_DEBUG：DEBUG 级别输出到临时文件
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # root logger 保持 WARNING，只对 run_with_callback 命名空间启用详细日志
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("run_with_callback").setLevel(log_level)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """主入口点。

    Args:
        argv: 程序名之后的参数（默认 sys.argv[1:]）

    Returns:
        退出码
    """
    args = list(sys.argv[1:] if argv is None else argv)

    if args in (["-h"], ["--help"]):
        print(USAGE, end="")
        return EXIT_OK
    if args == ["--version"]:
        print(f"{PROG} {__version__}")
        return EXIT_OK

    try:
        command_set = parse_command_line(args)
    except UsageError as e:
        print(f"{USAGE}{PROG}: error: {e}", file=sys.stderr)
        return EXIT_USAGE

    config = get_config()
    configure_logging(config)
    logger.debug(f"Starting {PROG}: {config}")

    try:
        return asyncio.run(run_supervisor(command_set, config=config))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
