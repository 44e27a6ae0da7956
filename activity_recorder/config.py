"""
应用配置中心（Configuration Center）

说明：
- 本模块统一管理记录管线的运行配置（本地存储、缓冲分块、指标阈值、上传接口、日志等）
- 配置优先从环境变量中读取，避免硬编码敏感信息；必要时提供安全的默认值
- 读取顺序：环境变量（优先） > 安全默认

常用环境变量（全部可选）：
1) 本地持久化
   - `DATABASE_URL`：完整连接串，默认 sqlite:///./data/recordings.db

2) 采集缓冲（Ingestion Buffer）
   - `CHUNK_CAPACITY`：单个指标每个分块的样本数上限，默认 1000
   - `JITTER_TOLERANCE_MS`：允许的乱序到达窗口（毫秒），默认 2000
   - `MAX_UNFLUSHED_SAMPLES`：单个指标未落盘样本的上限，超过后丢弃最旧样本，默认 5 × CHUNK_CAPACITY

3) 指标计算
   - `MOVING_SPEED_THRESHOLD`：判定为运动中的最低速度（m/s），默认 0.5
   - `MOVING_CADENCE_THRESHOLD`：无速度流时判定为运动中的最低踏频/步频（rpm），默认 10
   - `ELEVATION_NOISE_FLOOR_M`：爬升/下降的噪声阈值（米），默认 2.0
   - `NP_WINDOW_SECONDS`：标准化功率滚动窗口（秒），默认 30

4) 上传与日志
   - `UPLOAD_BASE_URL`：远端上传接口根地址
   - `UPLOAD_ACCESS_TOKEN`：上传接口鉴权令牌
   - `UPLOAD_TIMEOUT`：单次 HTTP 请求超时（秒），默认 10
   - `LOG_LEVEL`：日志等级，默认 INFO
"""

import os


# 日志（Logging）
# LOG_LEVEL 用于控制 logging 的根等级，详见 activity_recorder/logging_config.py
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()


# 采集缓冲（Ingestion Buffer）
CHUNK_CAPACITY = int(os.environ.get('CHUNK_CAPACITY', '1000'))
JITTER_TOLERANCE_MS = int(os.environ.get('JITTER_TOLERANCE_MS', '2000'))
MAX_UNFLUSHED_SAMPLES = int(os.environ.get('MAX_UNFLUSHED_SAMPLES', str(CHUNK_CAPACITY * 5)))


# 指标计算（Metrics）
# 速度单位为 m/s；低于该阈值的采样区间视为静止，不计入 moving_time
MOVING_SPEED_THRESHOLD = float(os.environ.get('MOVING_SPEED_THRESHOLD', '0.5'))
# 没有速度流时退回踏频判断（室内骑行台、跑步机等）
MOVING_CADENCE_THRESHOLD = float(os.environ.get('MOVING_CADENCE_THRESHOLD', '10'))
ELEVATION_NOISE_FLOOR_M = float(os.environ.get('ELEVATION_NOISE_FLOOR_M', '2.0'))
NP_WINDOW_SECONDS = int(os.environ.get('NP_WINDOW_SECONDS', '30'))


# 上传接口（Upload）
UPLOAD_BASE_URL = os.environ.get('UPLOAD_BASE_URL', 'http://127.0.0.1:8000/api')
UPLOAD_ACCESS_TOKEN = os.environ.get('UPLOAD_ACCESS_TOKEN', '')
UPLOAD_TIMEOUT = int(os.environ.get('UPLOAD_TIMEOUT', '10'))


# 数据库（Database）
def get_database_url() -> str:
    """
    获取本地存储的数据库连接 URL。

    优先读取完整的 `DATABASE_URL`；未设置时使用仓库下 data/recordings.db（SQLite），
    并确保目录存在。

    返回：
        SQLAlchemy 可识别的数据库连接串。
    """
    db_url = os.environ.get('DATABASE_URL')
    if db_url:
        return db_url

    data_dir = os.path.join(os.getcwd(), 'data')
    os.makedirs(data_dir, exist_ok=True)
    return f"sqlite:///{os.path.join(data_dir, 'recordings.db')}"
