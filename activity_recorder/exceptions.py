"""
记录管线的异常体系（Error Taxonomy）

- ValidationError：分块数据缺失/格式错误，或上传接口拒绝了负载
- DurabilityError：本地落盘失败，属于致命错误，当前记录必须中止
- ComputationError：单个派生指标无法计算，由指标层捕获并记为“不可用”
- NetworkError：上传时的网络/服务端临时错误，可由用户手动重试
- AuthError：鉴权失败，需要外部重新登录
- InvalidTransitionError：状态机收到当前状态下不合法的操作

权限不足沿用内建的 PermissionError。
"""

from typing import Optional


class RecorderError(Exception):
    """所有管线异常的基类。"""


class ValidationError(RecorderError):
    pass


class DurabilityError(RecorderError):
    pass


class ComputationError(RecorderError):
    pass


class UploadError(RecorderError):
    """上传失败的公共父类，保留 HTTP 状态码便于展示。"""

    kind = "upload"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkError(UploadError):
    kind = "network"


class AuthError(UploadError):
    kind = "auth"


class UploadValidationError(UploadError, ValidationError):
    """远端接口拒绝了负载（400/422）。"""

    kind = "validation"


class InvalidTransitionError(RecorderError):
    def __init__(self, machine: str, state: str, action: str):
        super().__init__(f"{machine}: cannot {action} while {state}")
        self.machine = machine
        self.state = state
        self.action = action
