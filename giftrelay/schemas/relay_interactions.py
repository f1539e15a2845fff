"""
giftrelay.schemas.relay_interactions
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

连接控制接口的 Pydantic 请求/响应模型。
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ConnectionStateName = Literal["idle", "connecting", "open", "closing", "closed"]


class ConnectRequest(BaseModel):
    """连接请求体。"""

    username: str | None = Field(
        default=None,
        max_length=100,
        description="要加入的直播间用户名，为空时使用当前已设置的用户名",
    )


class ConnectionStatusData(BaseModel):
    """礼物流连接的状态快照。"""

    state: ConnectionStateName = Field(..., description="连接状态")
    username: str = Field(..., description="当前用户名（unset 表示未设置）")
    url: str | None = Field(default=None, description="最近一次连接的完整地址")
    close_reason: str | None = Field(default=None, description="最近一次断开的原因")
    last_error: str | None = Field(default=None, description="最近一次传输层错误")
    subscribers: int = Field(..., description="当前礼物订阅者数量")


class ConnectResponseData(BaseModel):
    """连接 / 断开操作的结果。"""

    accepted: bool = Field(..., description="操作是否被执行（否则为空操作）")
    status: ConnectionStatusData = Field(..., description="操作后的连接状态")
