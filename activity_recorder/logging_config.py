"""
日志初始化（Logging Bootstrap）

说明：
- 统一初始化根日志记录器（root logger），设置格式与日志等级；
- 等级从显式传入 `level` 或 config.LOG_LEVEL 读取；
- urllib3 与 SQLAlchemy 引擎日志至少为 WARNING，根等级为 DEBUG 时才放开；
- 在 activity_recorder/main.py 启动时调用一次。
"""

import logging
from typing import Optional

from .config import LOG_LEVEL

NOISY_LOGGERS = ('urllib3', 'sqlalchemy.engine')


def setup_logging(level: Optional[str] = None) -> int:
    """初始化全局日志配置，返回实际生效的根等级。"""
    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    third_party = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party)
    return log_level
