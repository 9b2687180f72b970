"""日志配置模块：基于 loguru 的统一日志初始化。"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


_IS_CONFIGURED: bool = False

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {name} | {message}"


def setup_logging(logs_dir: Optional[Path] = None, level: str = "INFO") -> None:
    """初始化 loguru 日志配置。

    - 日志目录默认为项目根目录下的 ``logs/``；
    - 日志文件按小时维度滚动，文件名形如 ``thumbserve_YYYYMMDD_HH.log``；
    - 默认保留最近 72 小时的日志。

    Args:
        logs_dir: 日志目录，None 表示使用默认目录
        level: 日志级别
    """

    global _IS_CONFIGURED
    if _IS_CONFIGURED:
        return

    # 计算项目根目录：.../thumbserve/config/logging_config.py -> 项目根目录
    if logs_dir is None:
        project_root = Path(__file__).resolve().parents[2]
        logs_dir = project_root / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    log_file_pattern = logs_dir / "thumbserve_{time:YYYYMMDD_HH}.log"

    # 清理默认 handlers，避免重复输出
    logger.remove()

    # 控制台输出
    logger.add(sink=sys.stderr, level=level, format=_LOG_FORMAT)

    # 文件输出：按小时轮转
    logger.add(
        log_file_pattern,
        rotation="1 hour",
        retention="72 hours",
        encoding="utf-8",
        enqueue=True,
        backtrace=True,
        diagnose=False,
        level=level,
        format=_LOG_FORMAT,
    )

    _IS_CONFIGURED = True
