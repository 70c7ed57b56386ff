from __future__ import annotations

import sys
from typing import Optional

from loguru import logger

_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {thread.name} | {message}"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """替换 loguru 默认输出：stderr + 可选的滚动日志文件。"""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=_FORMAT, enqueue=True, backtrace=False, diagnose=False)
    if log_file:
        logger.add(log_file, level="DEBUG", rotation="5 MB", retention=3, enqueue=True, encoding="utf-8")
