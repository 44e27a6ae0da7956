"""
本文件包含数据库连接的工具函数。

主要功能：
1. 根据配置创建引擎（SQLite 时允许跨线程使用，采集线程与上传线程共用一个库）
2. 服务启动时使用的默认引擎
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from .config import get_database_url


def build_engine(database_url: str) -> Engine:
    """创建引擎；SQLite 需要关闭 check_same_thread 才能被多个采集线程共用。"""
    if database_url.startswith('sqlite'):
        return create_engine(database_url, connect_args={'check_same_thread': False})
    return create_engine(database_url, pool_pre_ping=True)


DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)
