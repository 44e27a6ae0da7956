"""
服务装配（Service Container）

一台设备对应一个容器：本地存储、权限、档案、上传客户端、当前记录状态机以及各会话的提交状态机。
容器挂在 app.state 上，路由通过 get_container 依赖取得。
"""

import threading
from typing import Dict, Optional

from fastapi import HTTPException, Request

from ..athletes.profile import ProfileProvider, StaticProfileProvider
from ..clients.upload_client import UploadClient
from ..exceptions import DurabilityError, InvalidTransitionError, ValidationError
from ..recording.permissions import BLUETOOTH, LOCATION, PermissionChecker, StaticPermissions
from ..recording.state_machine import RecordingStateMachine
from ..recording.store import RecordingStore
from ..submission.state_machine import SubmissionStateMachine, Uploader


class RecorderContainer:
    def __init__(
        self,
        store: RecordingStore,
        permissions: Optional[PermissionChecker] = None,
        profiles: Optional[ProfileProvider] = None,
        uploader: Optional[Uploader] = None,
    ):
        self.store = store
        self.permissions = permissions or StaticPermissions({BLUETOOTH: True, LOCATION: True})
        self.profiles = profiles or StaticProfileProvider()
        self.uploader = uploader or UploadClient()
        self.recording: Optional[RecordingStateMachine] = None
        self.submissions: Dict[str, SubmissionStateMachine] = {}
        self._lock = threading.Lock()

    def submission_for(self, session_id: str) -> SubmissionStateMachine:
        with self._lock:
            machine = self.submissions.get(session_id)
            if machine is None:
                machine = SubmissionStateMachine(self.store, session_id, self.profiles, self.uploader)
                self.submissions[session_id] = machine
            return machine


def get_container(request: Request) -> RecorderContainer:
    return request.app.state.container


def raise_http(e: Exception) -> None:
    """把管线异常映射为 HTTP 错误。"""
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, InvalidTransitionError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PermissionError):
        raise HTTPException(status_code=403, detail=str(e))
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=422, detail=str(e))
    if isinstance(e, DurabilityError):
        raise HTTPException(status_code=500, detail=f"本地存储失败: {e}")
    raise HTTPException(status_code=500, detail=f"服务器内部错误: {str(e)}")
