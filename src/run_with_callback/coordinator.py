"""终止竞争协调模块。

同时等待两个事件源，按先到者决定后续动作：
- 终止信号先到：执行回调命令（至多一次），再按策略处理主命令
- 主命令先结束（CompletionSignal）：不执行回调，直接结束

两个分支互斥，输掉的一方会被取消并回收，不会留下仍在监听已消费通道的任务。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from enum import Enum
from typing import Optional

from .callback import CallbackExecutor
from .config import MainSignalPolicy, get_config
from .signal_source import TerminationSignalSource
from .supervisor import CommandSupervisor, SupervisorState

__all__ = ["RaceResult", "TerminationRaceCoordinator"]

logger = logging.getLogger(__name__)


class RaceResult(str, Enum):
    """竞争结果。"""

    SIGNALLED = "signalled"
    COMPLETED = "completed"


class TerminationRaceCoordinator:
    """终止竞争协调器。

    Example:
        ```python
        supervisor = CommandSupervisor(command_set.main)
        coordinator = TerminationRaceCoordinator(
            supervisor,
            SignalManager(),
            CallbackExecutor(command_set.callback),
        )
        supervisor.start()
        result = await coordinator.race()
        ```

    Attributes:
        main_on_signal: 信号分支上主命令的处理策略
        terminate_grace: 转发终止请求后等待主命令退出的时间（秒）
    """

    def __init__(
        self,
        supervisor: CommandSupervisor,
        signal_source: TerminationSignalSource,
        callback: CallbackExecutor,
        main_on_signal: Optional[MainSignalPolicy] = None,
        terminate_grace: Optional[float] = None,
    ) -> None:
        """初始化协调器。

        Args:
            supervisor: 主命令监督者（提供 CompletionSignal）
            signal_source: 终止信号源
            callback: 回调执行器
            main_on_signal: 主命令处理策略（默认从配置读取）
            terminate_grace: 宽限期（默认从配置读取）
        """
        self._supervisor = supervisor
        self._signal_source = signal_source
        self._callback = callback

        # 两项都显式给出时不读取配置
        if main_on_signal is None or terminate_grace is None:
            config = get_config()
            if main_on_signal is None:
                main_on_signal = config.main_on_signal
            if terminate_grace is None:
                terminate_grace = config.terminate_grace
        self.main_on_signal = main_on_signal
        self.terminate_grace = terminate_grace

        self._raced = False
        self._result: Optional[RaceResult] = None

    @property
    def result(self) -> Optional[RaceResult]:
        """竞争结果（尚未结束时为 None）。"""
        return self._result

    async def race(self) -> RaceResult:
        """等待终止信号与主命令结束中的先到者，并执行对应分支。

        两者在同一轮事件循环中同时就绪时，以主命令结束为准。

        Raises:
            RuntimeError: 重复调用
        """
        if self._raced:
            raise RuntimeError("race() can only be awaited once")
        self._raced = True

        signal_task = asyncio.create_task(
            self._signal_source.wait(), name="termination-signal"
        )
        completion_task = asyncio.create_task(
            self._supervisor.completion.wait(), name="main-completion"
        )

        try:
            done, _ = await asyncio.wait(
                {signal_task, completion_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            # 取消并回收输掉的一方
            for task in (signal_task, completion_task):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task

        if completion_task in done:
            outcome = completion_task.result()
            if outcome is None:
                logger.debug("Main command supervision ended without an outcome")
            self._result = RaceResult.COMPLETED
        else:
            signum = signal_task.result()
            self._result = RaceResult.SIGNALLED
            logger.info(
                f"Received {signal.Signals(signum).name}! Performing cleanup before exit."
            )
            await self._callback.execute()
            await self._settle_main()

        self._task_done()
        return self._result

    async def _settle_main(self) -> None:
        """信号分支：回调完成后按策略处理仍在运行的主命令。"""
        if self.main_on_signal is MainSignalPolicy.LEAVE:
            if not await self._supervisor.join(timeout=0):
                logger.warning(f"Main command pid={self._supervisor.pid} left running")
            return

        if self._supervisor.state is SupervisorState.IDLE:
            # 信号在主命令启动完成前到达：等待启动结束后再转发
            logger.info("Main command not yet spawned, waiting before forwarding termination")
            if not await self._supervisor.wait_spawned(timeout=self.terminate_grace):
                logger.warning(
                    f"Main command not spawned after {self.terminate_grace}s, "
                    "termination not forwarded"
                )
                return

        pid = self._supervisor.pid
        if not self._supervisor.terminate():
            return

        logger.info(f"Forwarded termination to main command pid={pid}")
        if not await self._supervisor.join(timeout=self.terminate_grace):
            logger.warning(
                f"Main command pid={pid} still running after {self.terminate_grace}s"
            )

    @staticmethod
    def _task_done() -> None:
        logger.info("All tasks have finished. Exiting.")
