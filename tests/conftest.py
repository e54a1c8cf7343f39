"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from run_with_callback.commands import CommandSpec  # noqa: E402
from run_with_callback.runtime import ProcessRunner  # noqa: E402

IS_WINDOWS = sys.platform == "win32"


class FakeSignalSource:
    """可手动触发的终止信号源，替代真实的 OS 信号。"""

    def __init__(self) -> None:
        self.started = False
        self.stopped = False
        self.signum = signal.SIGTERM
        self._event = asyncio.Event()

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def wait(self) -> int:
        await self._event.wait()
        return self.signum

    def trigger(self, signum: int = signal.SIGTERM) -> None:
        self.signum = signum
        self._event.set()


class RecordingRunner(ProcessRunner):
    """记录所有被启动命令的 ProcessRunner。"""

    def __init__(self) -> None:
        self.spawned: list[CommandSpec] = []

    async def spawn(self, command: CommandSpec) -> asyncio.subprocess.Process:
        self.spawned.append(command)
        return await super().spawn(command)


class SlowSpawnRunner(RecordingRunner):
    """启动前先等待 delay 秒，模拟尚未完成的启动。"""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def spawn(self, command: CommandSpec) -> asyncio.subprocess.Process:
        await asyncio.sleep(self.delay)
        return await super().spawn(command)


def python_argv(code: str, *args: str) -> tuple[str, ...]:
    """以当前解释器运行一段代码的命令行（跨平台）。"""
    return (sys.executable, "-c", code, *args)


# 追加一行到 argv[1] 指定的文件，用于统计回调执行次数
APPEND_LINE = "import sys; open(sys.argv[1], 'a').write('called\\n')"


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def fake_signals() -> FakeSignalSource:
    """可手动触发的信号源。"""
    return FakeSignalSource()


@pytest.fixture
def recording_runner() -> RecordingRunner:
    """记录启动命令的进程启动器。"""
    return RecordingRunner()


@pytest.fixture
def marker_file(tmp_path: Path) -> Path:
    """回调命令写入的标记文件（初始不存在）。"""
    return tmp_path / "callback.log"
