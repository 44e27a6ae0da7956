"""远端上传接口客户端（最小封装）

功能：
- 统一添加鉴权头；
- POST 一条活动汇总 + 压缩后的指标流，返回远端 id；
- 按状态码把失败归类为 UploadValidationError / AuthError / NetworkError。
"""

from typing import Any, Dict, List, Optional
import logging
import requests

from ..config import UPLOAD_ACCESS_TOKEN, UPLOAD_BASE_URL, UPLOAD_TIMEOUT
from ..exceptions import AuthError, NetworkError, UploadValidationError
from ..metrics.schemas import ActivityMetricsRecord
from ..streams.models import CompressedStream


logger = logging.getLogger(__name__)


class UploadClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or UPLOAD_BASE_URL).rstrip("/")
        self.access_token = access_token if access_token is not None else UPLOAD_ACCESS_TOKEN
        self.timeout = timeout or UPLOAD_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        })

    @staticmethod
    def build_payload(record: ActivityMetricsRecord, streams: List[CompressedStream]) -> Dict[str, Any]:
        return {
            "activity": record.to_payload(),
            "streams": [s.model_dump(mode="json", exclude_none=True) for s in streams],
        }

    def upload_activity(self, record: ActivityMetricsRecord, streams: List[CompressedStream]) -> str:
        """上传一次活动，成功时返回远端 id。"""
        url = f"{self.base_url}/activities"
        try:
            resp = self.session.post(url, json=self.build_payload(record, streams), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"[upload][network] session={record.session_id}: {e}")
            raise NetworkError(f"上传请求失败: {e}") from e

        if resp.status_code in (200, 201):
            try:
                data = resp.json()
            except ValueError:
                data = None
            remote_id = data.get("id") if isinstance(data, dict) else None
            if remote_id is None:
                raise NetworkError("上传接口返回成功但缺少 id", resp.status_code)
            logger.info(f"[upload][ok] session={record.session_id} remote_id={remote_id}")
            return str(remote_id)
        if resp.status_code in (400, 422):
            raise UploadValidationError(f"上传数据被拒绝: {resp.text}", resp.status_code)
        if resp.status_code in (401, 403):
            raise AuthError(f"上传鉴权失败，需要重新登录: {resp.text}", resp.status_code)
        raise NetworkError(f"上传接口错误 {resp.status_code}: {resp.text}", resp.status_code)
