"""run-with-callback - 监督一个命令，收到终止信号时执行一次回调命令。

环境变量:
    RWC_LOG_DEBUG: 日志调试模式 (默认 false)
    RWC_MAIN_ON_SIGNAL: 信号分支上主命令的处理策略 (terminate/leave)
    RWC_TERMINATE_GRACE: 等待主命令退出的宽限期 (默认 5.0s)

用法:
    run-with-callback sleep 30 -- echo cleanup
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
