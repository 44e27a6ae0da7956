"""训练计划进度：只暴露按下标查询、当前步骤与前进操作，步骤列表本身不对外公开。"""

import threading
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field


class PlanStep(BaseModel):
    name            : str             = Field(...)
    duration_seconds: Optional[float] = Field(default=None, gt=0)
    target_power    : Optional[float] = Field(default=None, description="W")
    target_heartrate: Optional[float] = Field(default=None, description="bpm")


class PlanProgress:
    def __init__(self, plan_id: str, steps: Sequence[PlanStep]):
        self.plan_id = plan_id
        self._steps: List[PlanStep] = list(steps)
        self._index = 0
        self._lock = threading.Lock()

    @property
    def step_count(self) -> int:
        return len(self._steps)

    @property
    def current_index(self) -> int:
        return self._index

    def peek_step(self, index: int) -> Optional[PlanStep]:
        """按下标查看步骤；越界返回 None。"""
        if 0 <= index < len(self._steps):
            return self._steps[index]
        return None

    @property
    def current_step(self) -> Optional[PlanStep]:
        return self.peek_step(self._index)

    def advance(self) -> Optional[PlanStep]:
        """前进到下一步并返回它；已经是最后一步时返回 None 并停在末尾。"""
        with self._lock:
            if self._index < len(self._steps):
                self._index += 1
            return self.peek_step(self._index)

    @property
    def finished(self) -> bool:
        return self._index >= len(self._steps)
