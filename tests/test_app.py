"""应用入口测试。

- main(): 用法错误、--help、--version
- run_supervisor(): 使用可触发的信号源
- 端到端：以子进程运行 python -m run_with_callback 并投递真实 SIGTERM
"""

from __future__ import annotations

import asyncio
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from conftest import (
    APPEND_LINE,
    IS_WINDOWS,
    SRC_DIR,
    FakeSignalSource,
    RecordingRunner,
    python_argv,
)
from run_with_callback import __version__
from run_with_callback.app import (
    EXIT_OK,
    EXIT_SPAWN_ERROR,
    EXIT_USAGE,
    USAGE,
    main,
    run_supervisor,
)
from run_with_callback.commands import CommandSet, CommandSpec
from run_with_callback.config import Config


class TestMainArguments:
    """命令行参数处理测试。"""

    def test_help(self, capsys):
        assert main(["--help"]) == EXIT_OK
        assert capsys.readouterr().out == USAGE

    def test_version(self, capsys):
        assert main(["--version"]) == EXIT_OK
        assert __version__ in capsys.readouterr().out

    @pytest.mark.parametrize(
        "argv",
        [
            [],
            ["sleep", "5"],
            ["--", "echo", "cleanup"],
        ],
    )
    def test_usage_errors(self, argv, capsys):
        """缺少回调段或主命令时返回用法错误。"""
        assert main(argv) == EXIT_USAGE
        err = capsys.readouterr().err
        assert "usage:" in err
        assert "error:" in err


class TestRunSupervisor:
    """run_supervisor() 测试。"""

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_completed_returns_ok(
        self, fake_signals: FakeSignalSource, recording_runner: RecordingRunner, marker_file: Path
    ):
        commands = CommandSet(
            main=CommandSpec(python_argv("pass")),
            callback=CommandSpec(python_argv(APPEND_LINE, str(marker_file))),
        )

        code = await run_supervisor(
            commands, config=Config(), signal_source=fake_signals, runner=recording_runner
        )

        assert code == EXIT_OK
        assert fake_signals.started and fake_signals.stopped
        assert not marker_file.exists()

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_spawn_error_exit_code(self, fake_signals: FakeSignalSource):
        commands = CommandSet(
            main=CommandSpec(("rwc-nonexistent-binary-for-tests",)),
            callback=CommandSpec(("echo", "cleanup")),
        )

        code = await run_supervisor(commands, config=Config(), signal_source=fake_signals)

        assert code == EXIT_SPAWN_ERROR
        assert fake_signals.stopped

    @pytest.mark.asyncio
    @pytest.mark.timeout(15)
    async def test_signalled_runs_callback(
        self, fake_signals: FakeSignalSource, marker_file: Path
    ):
        commands = CommandSet(
            main=CommandSpec(python_argv("import time; time.sleep(30)")),
            callback=CommandSpec(python_argv(APPEND_LINE, str(marker_file))),
        )
        asyncio.get_running_loop().call_later(0.3, fake_signals.trigger)

        code = await run_supervisor(commands, config=Config(), signal_source=fake_signals)

        assert code == EXIT_OK
        assert marker_file.read_text() == "called\n"
        assert fake_signals.stopped


# =============================================================================
# 端到端测试
# =============================================================================


def _supervisor_env() -> dict[str, str]:
    env = {k: v for k, v in os.environ.items() if not k.startswith("RWC_")}
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(SRC_DIR), env.get("PYTHONPATH", "")) if p
    )
    return env


def _launch(*argv: str) -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "run_with_callback", *argv],
        env=_supervisor_env(),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


def _wait_for_file(path: Path, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while not path.exists():
        if time.monotonic() > deadline:
            raise TimeoutError(f"{path} was not created")
        time.sleep(0.05)


class TestEndToEnd:
    """以子进程运行完整程序。"""

    @pytest.mark.timeout(30)
    def test_main_finishes_first(self, marker_file: Path):
        """主命令先结束：不执行回调，退出码 0。"""
        proc = _launch(*python_argv("pass"), "--", *python_argv(APPEND_LINE, str(marker_file)))
        _, stderr = proc.communicate(timeout=20)

        assert proc.returncode == 0, stderr.decode()
        assert not marker_file.exists()
        assert b"All tasks have finished" in stderr

    @pytest.mark.timeout(30)
    def test_missing_main_binary_terminates(self, marker_file: Path):
        """主命令不存在：报告错误并退出，不挂起。"""
        proc = _launch(
            "rwc-nonexistent-binary-for-tests", "--", *python_argv(APPEND_LINE, str(marker_file))
        )
        _, stderr = proc.communicate(timeout=20)

        assert proc.returncode == EXIT_SPAWN_ERROR
        assert b"rwc-nonexistent-binary-for-tests" in stderr
        assert not marker_file.exists()

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX signal handling")
    @pytest.mark.timeout(40)
    def test_sigterm_runs_callback_once(self, tmp_path: Path, marker_file: Path):
        """收到 SIGTERM：回调执行一次，主命令被回收，程序退出。"""
        started = tmp_path / "started"
        main_code = (
            "import pathlib, sys, time; pathlib.Path(sys.argv[1]).touch(); time.sleep(30)"
        )
        proc = _launch(
            *python_argv(main_code, str(started)),
            "--",
            *python_argv(APPEND_LINE, str(marker_file)),
        )
        try:
            # 信号处理器在主命令启动前安装，started 出现即可安全投递
            _wait_for_file(started, timeout=20)
            proc.send_signal(signal.SIGTERM)
            _, stderr = proc.communicate(timeout=20)
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        assert proc.returncode == 0, stderr.decode()
        assert marker_file.read_text() == "called\n"
        assert b"Received SIGTERM" in stderr
