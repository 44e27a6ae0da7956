"""
本文件定义了聚合后指标流与压缩流的数据模型。

AggregatedStream 是按数据类型区分的联合类型：
- FloatStream：标量数值流，唯一允许 min/max/avg 归约的类型
- BooleanStream：布尔流（如 moving）
- LatLngStream：坐标流，values 形状为 (n, 2)，经纬度始终成对保存
"""

from typing import Annotated, Literal, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from ..recording.models import DataType


class _StreamBase(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    metric      : str                  = Field(...)
    timestamps  : np.ndarray           = Field(..., description="epoch 毫秒，int64")
    sample_count: int                  = Field(...)
    paused_mask : Optional[np.ndarray] = Field(default=None, description="暂停期间采集的样本为 True；无暂停样本时为 None")

    def active_mask(self) -> np.ndarray:
        if self.paused_mask is None:
            return np.ones(self.sample_count, dtype=bool)
        return ~self.paused_mask


class FloatStream(_StreamBase):
    data_type: Literal[DataType.FLOAT] = DataType.FLOAT
    values   : np.ndarray              = Field(..., description="float64")
    min_value: Optional[float]         = None
    max_value: Optional[float]         = None
    avg_value: Optional[float]         = None


class BooleanStream(_StreamBase):
    data_type: Literal[DataType.BOOLEAN] = DataType.BOOLEAN
    values   : np.ndarray                = Field(..., description="bool")


class LatLngStream(_StreamBase):
    data_type: Literal[DataType.LATLNG] = DataType.LATLNG
    values   : np.ndarray               = Field(..., description="float64，形状 (n, 2)")


AggregatedStream = Annotated[
    Union[FloatStream, BooleanStream, LatLngStream],
    Field(discriminator='data_type'),
]


class CompressedStream(BaseModel):
    """压缩后的指标流（上传负载的一部分）"""
    metric               : str             = Field(...)
    data_type            : DataType        = Field(...)
    compressed_values    : str             = Field(..., description="gzip + base64")
    compressed_timestamps: str             = Field(..., description="int64 差分 + gzip + base64")
    sample_count         : int             = Field(...)
    original_size        : int             = Field(..., description="压缩前的字节数")
    min_value            : Optional[float] = None
    max_value            : Optional[float] = None
    avg_value            : Optional[float] = None
