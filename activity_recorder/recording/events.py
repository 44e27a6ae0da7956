"""
事件通道（Event Channel）

每个状态机实例持有自己的通道，订阅者通过 subscribe 注册回调并拿到取消订阅函数。
单个订阅者抛出的异常只记录日志，不影响其他订阅者，也不影响状态迁移本身。
"""

import logging
import threading
from typing import Callable, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from .models import RecordingState

logger = logging.getLogger(__name__)

E = TypeVar('E')


class EventChannel(Generic[E]):
    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[E], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[E], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: E) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(f"[events][{self.name}] subscriber failed")

    def __len__(self) -> int:
        return len(self._subscribers)


class RecordingEvent(BaseModel):
    """记录状态变化通知"""
    session_id: Optional[str]  = Field(default=None)
    previous  : RecordingState = Field(...)
    state     : RecordingState = Field(...)
    timestamp : int            = Field(..., description="epoch 毫秒")
    error     : Optional[str]  = Field(default=None)
