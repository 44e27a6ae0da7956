"""
pytest配置文件，定义测试环境和共享的测试夹具（fixtures）。

主要功能：
1. 每个测试使用独立的内存 SQLite 本地存储
2. 提供可控时钟、权限、运动员档案与假上传客户端
3. 提供分块构造工具与 FastAPI 测试客户端
"""

import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import date
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from activity_recorder.athletes.profile import AthleteProfile, StaticProfileProvider
from activity_recorder.exceptions import NetworkError
from activity_recorder.recording.models import DataType, StreamChunk
from activity_recorder.recording.permissions import BLUETOOTH, LOCATION, StaticPermissions
from activity_recorder.recording.store import RecordingStore

T0 = 1_700_000_000_000


class FakeClock:
    """可手动推进的毫秒时钟"""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> int:
        self.now += int(seconds * 1000)
        return self.now


class FakeUploader:
    """记录每次调用；设置 fail_with 后抛出该异常"""

    def __init__(self):
        self.calls = []
        self.fail_with = None
        self.before_return = None

    def upload_activity(self, record, streams):
        self.calls.append((record, streams))
        if self.before_return is not None:
            self.before_return()
        if self.fail_with is not None:
            raise self.fail_with
        return f"remote-{len(self.calls)}"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    store = RecordingStore(engine)
    store.create_tables()
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def permissions():
    return StaticPermissions({BLUETOOTH: True, LOCATION: True})


@pytest.fixture
def profile():
    return AthleteProfile(
        id="athlete-1",
        weight_kg=70.0,
        ftp=250.0,
        threshold_hr=170.0,
        dob=date(1990, 6, 15),
        gender="male",
    )


@pytest.fixture
def profiles(profile):
    return StaticProfileProvider({profile.id: profile})


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def network_error():
    return NetworkError("connection reset")


@pytest.fixture
def make_chunk():
    """构造分块：make_chunk(metric, index, values, timestamps)"""

    def _make(metric, index, values, timestamps, data_type=DataType.FLOAT, session_id="s-1",
              paused_offsets=None, sample_count=None):
        return StreamChunk(
            session_id=session_id,
            metric=metric,
            data_type=data_type,
            chunk_index=index,
            data=json.dumps(values),
            timestamps=json.dumps(timestamps),
            paused_offsets=json.dumps(paused_offsets) if paused_offsets else None,
            sample_count=len(values) if sample_count is None else sample_count,
            start_time=timestamps[0] if timestamps else 0,
            end_time=timestamps[-1] if timestamps else 0,
        )

    return _make


@pytest.fixture
def client(store, permissions, profiles, uploader):
    """提供FastAPI测试客户端"""
    from activity_recorder.api.container import RecorderContainer
    from activity_recorder.main import create_app

    container = RecorderContainer(store, permissions=permissions, profiles=profiles, uploader=uploader)
    app = create_app(container)
    with TestClient(app) as test_client:
        yield test_client
