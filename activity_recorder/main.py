"""
活动记录服务主应用文件。

本文件是FastAPI应用的入口点，负责：
1. 初始化日志与本地存储
2. 装配服务容器（存储、权限、档案、上传客户端）
3. 注册各个模块的路由
"""

from typing import Optional

from fastapi import FastAPI

from .api.athletes import router as athletes_router
from .api.container import RecorderContainer
from .api.recordings import router as recordings_router
from .api.submissions import router as submissions_router
from .config import LOG_LEVEL
from .logging_config import setup_logging
from .recording.store import RecordingStore


def create_app(container: Optional[RecorderContainer] = None) -> FastAPI:
    if container is None:
        from .utils import engine
        store = RecordingStore(engine)
        store.create_tables()
        container = RecorderContainer(store)

    app = FastAPI(title="活动记录 API")
    app.state.container = container

    # 路由注册
    app.include_router(recordings_router, tags=["记录"])
    app.include_router(submissions_router, tags=["提交"])
    app.include_router(athletes_router, tags=["运动员"])
    return app


setup_logging(LOG_LEVEL)
app = create_app()
