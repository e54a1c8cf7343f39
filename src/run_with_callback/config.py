"""RWC 环境变量配置管理。

环境变量:
    RWC_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (DEBUG 级别，日志输出到临时文件)
        - false/0/no = 关闭 (默认，INFO 级别，日志输出到 stderr)

    RWC_MAIN_ON_SIGNAL: 收到终止信号、回调执行完毕后如何处理主命令
        - terminate = 向仍在运行的主命令发送终止请求并等待其退出 (默认)
        - leave = 不处理主命令（原始行为）

    RWC_TERMINATE_GRACE: terminate 模式下等待主命令退出的时间（秒）
        - 默认 5.0 秒
        - 超时后只记录警告，不会强制 kill
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "MainSignalPolicy", "load_config", "get_config", "reload_config"]

DEFAULT_TERMINATE_GRACE = 5.0


class MainSignalPolicy(Enum):
    """信号分支上主命令的处理策略。

    - TERMINATE: 回调完成后向主命令转发终止请求，并在宽限期内回收
    - LEAVE: 不向主命令发送任何信号
    """

    TERMINATE = "terminate"
    LEAVE = "leave"

    @classmethod
    def from_string(cls, value: str) -> "MainSignalPolicy":
        """从字符串解析策略。

        Args:
            value: 策略字符串 (terminate/leave)

        Returns:
            对应的 MainSignalPolicy 枚举值，无效值返回 TERMINATE
        """
        value = value.lower().strip()
        for policy in cls:
            if policy.value == value:
                return policy
        return cls.TERMINATE  # 默认值


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_main_policy(value: str | None) -> MainSignalPolicy:
    """解析主命令处理策略环境变量。"""
    if not value:
        return MainSignalPolicy.TERMINATE
    return MainSignalPolicy.from_string(value)


def _parse_terminate_grace(value: str | None) -> float:
    """解析宽限期环境变量。"""
    if not value:
        return DEFAULT_TERMINATE_GRACE
    try:
        grace = float(value)
        return max(0.1, min(grace, 60.0))  # 限制在 0.1-60 秒范围
    except ValueError:
        return DEFAULT_TERMINATE_GRACE


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "run-with-callback"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"rwc_debug_{timestamp}_{os.getpid()}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """RWC 配置。

    Attributes:
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        main_on_signal: 信号分支上主命令的处理策略
        terminate_grace: 转发终止请求后等待主命令退出的时间（秒）
    """

    log_debug: bool = False
    log_file: str | None = None
    main_on_signal: MainSignalPolicy = MainSignalPolicy.TERMINATE
    terminate_grace: float = DEFAULT_TERMINATE_GRACE

    def __repr__(self) -> str:
        return (
            f"Config(log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"main_on_signal={self.main_on_signal.value}, "
            f"terminate_grace={self.terminate_grace})"
        )


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("RWC_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        log_debug=log_debug,
        log_file=log_file,
        main_on_signal=_parse_main_policy(os.environ.get("RWC_MAIN_ON_SIGNAL")),
        terminate_grace=_parse_terminate_grace(os.environ.get("RWC_TERMINATE_GRACE")),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
