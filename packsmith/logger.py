"""
日志模块

使用 loguru 提供统一的日志记录功能。控制台输出到 stderr，
可选地把完整的调试日志另写一份到文件，便于排查解析与下载问题。
"""

import os
import sys
from pathlib import Path
from typing import Optional, TextIO

from loguru import logger

CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}"


def setup_logger(
    level: Optional[str] = None,
    sink: Optional[TextIO] = None,
    log_file: Optional[Path] = None,
    enqueue: bool = True,
    colorize: Optional[bool] = None,
) -> None:
    """
    设置日志记录器

    Args:
        level: 控制台日志级别 (DEBUG, INFO, WARNING, ERROR)
        sink: 控制台输出目标，默认 sys.stderr
        log_file: 额外写入的日志文件，始终记录 DEBUG 级别
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色，None 时由 loguru 按终端自动判断
    """
    # 从环境变量获取日志级别
    if level is None:
        level = "DEBUG" if os.environ.get("PACKSMITH_DEBUG", "0") == "1" else "INFO"

    logger.remove()

    logger.add(
        sink=sink or sys.stderr,
        format=CONSOLE_FORMAT,
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if log_file is not None:
        logger.add(
            sink=str(log_file),
            format=FILE_FORMAT,
            enqueue=enqueue,
            level="DEBUG",
            colorize=False,
            rotation="10 MB",
            retention=3,
            encoding="utf-8",
        )

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")


__all__ = ["logger", "setup_logger"]
