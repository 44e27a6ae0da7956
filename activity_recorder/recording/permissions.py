"""开始记录前的权限检查：户外运动需要定位，所有运动都需要蓝牙连接传感器。"""

from typing import Dict, List, Optional, Protocol

from .models import ActivityType

LOCATION = "location"
BLUETOOTH = "bluetooth"


def required_permissions(activity_type: ActivityType) -> List[str]:
    required = [BLUETOOTH]
    if ActivityType(activity_type).is_outdoor:
        required.append(LOCATION)
    return required


class PermissionChecker(Protocol):
    def is_granted(self, name: str) -> bool:
        ...


class StaticPermissions:
    def __init__(self, granted: Optional[Dict[str, bool]] = None):
        self._granted = dict(granted or {})

    def grant(self, name: str) -> None:
        self._granted[name] = True

    def revoke(self, name: str) -> None:
        self._granted[name] = False

    def is_granted(self, name: str) -> bool:
        return self._granted.get(name, False)


def missing_permissions(checker: PermissionChecker, activity_type: ActivityType) -> List[str]:
    return [name for name in required_permissions(activity_type) if not checker.is_granted(name)]
