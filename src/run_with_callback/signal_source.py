"""终止信号源模块。

把进程级的 OS 信号抽象为可注入的能力（"等待下一个终止信号"），
竞争协调器只依赖 TerminationSignalSource 协议，测试可以替换为可手动触发的实现。

- POSIX: 监听 SIGTERM
- Windows: 没有可用的 SIGTERM，改为监听 SIGINT (Ctrl+C)
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any, Callable, Optional, Protocol

__all__ = ["TerminationSignalSource", "SignalManager", "default_signals"]

logger = logging.getLogger(__name__)


def default_signals() -> tuple[int, ...]:
    """当前平台上监听的终止信号。"""
    if sys.platform == "win32":
        return (signal.SIGINT,)
    return (signal.SIGTERM,)


class TerminationSignalSource(Protocol):
    """终止信号源协议。"""

    async def start(self) -> None:
        """开始监听（必须在主命令启动前调用）。"""
        ...

    async def stop(self) -> None:
        """停止监听并恢复原始处理器。"""
        ...

    async def wait(self) -> int:
        """等待终止信号，返回信号编号。"""
        ...


class SignalManager:
    """OS 终止信号源。

    在事件循环中安装信号处理器，第一个到达的终止信号会唤醒 wait()。
    之后到达的信号只记录日志，不会打断正在执行的回调命令。

    Example:
        ```python
        signals = SignalManager()

        async def main():
            await signals.start()
            try:
                signum = await signals.wait()
            finally:
                await signals.stop()

        asyncio.run(main())
        ```

    Attributes:
        signals: 监听的信号编号
    """

    def __init__(
        self,
        signals: Optional[tuple[int, ...]] = None,
        on_signal: Optional[Callable[[int], None]] = None,
    ) -> None:
        """初始化信号源。

        Args:
            signals: 监听的信号（默认按平台选择）
            on_signal: 收到第一个终止信号时的回调函数
        """
        self.signals = signals if signals is not None else default_signals()
        self._on_signal = on_signal

        # 内部状态
        self._received: Optional[int] = None
        self._signal_event: Optional[asyncio.Event] = None
        self._original_handlers: dict[int, Any] = {}
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def received_signal(self) -> Optional[int]:
        """已收到的终止信号编号。"""
        return self._received

    @property
    def is_signal_received(self) -> bool:
        """是否已收到终止信号。"""
        return self._received is not None

    async def start(self) -> None:
        """启动信号监听。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._signal_event = asyncio.Event()
        self._running = True

        for signum in self.signals:
            self._original_handlers[signum] = signal.getsignal(signum)
            if sys.platform != "win32":
                self._loop.add_signal_handler(signum, self._handle_signal, signum)
            else:
                # Windows: signal.signal() 的处理器在主线程中执行，转交给事件循环
                signal.signal(
                    signum,
                    lambda sig, frame: self._loop.call_soon_threadsafe(
                        self._handle_signal, sig
                    ),
                )

        names = ", ".join(signal.Signals(s).name for s in self.signals)
        logger.debug(f"Signal handlers installed ({names})")

    async def stop(self) -> None:
        """停止信号监听。

        恢复原始处理器。
        """
        if not self._running:
            return

        self._running = False

        for signum, original in self._original_handlers.items():
            try:
                if sys.platform != "win32" and self._loop:
                    self._loop.remove_signal_handler(signum)
                # getsignal() 返回 None 表示原处理器并非由 Python 安装
                if original is not None:
                    signal.signal(signum, original)
            except (ValueError, OSError, RuntimeError) as e:
                logger.debug(f"Error removing handler for signal {signum}: {e}")
        self._original_handlers.clear()

        logger.debug("Signal handlers removed")

    async def wait(self) -> int:
        """等待终止信号。

        Returns:
            收到的信号编号

        Raises:
            RuntimeError: 尚未调用 start()
        """
        if self._signal_event is None:
            raise RuntimeError("SignalManager.start() must be called before wait()")
        await self._signal_event.wait()
        assert self._received is not None
        return self._received

    def request_termination(self, signum: int = signal.SIGTERM) -> None:
        """程序化触发终止，效果等同于收到 signum。"""
        logger.info("Programmatic termination requested")
        self._handle_signal(signum)

    def _handle_signal(self, signum: int) -> None:
        """处理终止信号。

        只有第一个信号生效，后续信号被忽略。
        """
        name = signal.Signals(signum).name
        if self._received is not None:
            logger.info(f"{name} received again, cleanup already in progress")
            return

        self._received = signum
        logger.debug(f"{name} received")

        if self._on_signal:
            try:
                self._on_signal(signum)
            except Exception as e:
                logger.warning(f"Error in signal callback: {e}")

        if self._signal_event is not None:
            self._signal_event.set()
