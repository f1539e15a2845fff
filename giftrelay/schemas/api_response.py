"""
giftrelay.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

全局统一应答体，所有 API 接口复用此结构返回一致的 JSON 格式。

连接控制类操作可能是空操作（例如重复连接），此时仍返回 HTTP 200，
但 ``msg`` 为 ``"ignored"``，便于调用方区分。
"""
from __future__ import annotations
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

MSG_SUCCESS: str = "success"
MSG_IGNORED: str = "ignored"


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    .. code-block:: json

        {"code": 200, "data": {...}, "msg": "success"}

    Attributes:
        code: 业务状态码，200 表示成功。
        data: 实际业务数据。
        msg: ``success`` / ``ignored`` / 错误描述。
    """

    code: int = Field(default=200, description="业务状态码")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default=MSG_SUCCESS, description="状态消息")

    @classmethod
    def ok(cls, data: T, msg: str = MSG_SUCCESS) -> ApiResponse[T]:
        """快捷构造成功响应。"""
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def done_or_ignored(cls, data: T, accepted: bool) -> ApiResponse[T]:
        """操作被执行时返回 success，否则返回 ignored。"""
        return cls.ok(data=data, msg=MSG_SUCCESS if accepted else MSG_IGNORED)

    @classmethod
    def fail(cls, msg: str = "error", code: int = 500, data: Any = None) -> ApiResponse[Any]:
        """快捷构造失败响应。"""
        return cls(code=code, data=data, msg=msg)
