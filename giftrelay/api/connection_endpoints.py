"""
giftrelay.api.connection_endpoints
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物流连接控制 REST 接口。

路由前缀 ``/api``。

端点:
  - ``GET    /connection``  → 查看连接状态
  - ``POST   /connection``  → 设置用户名并连接（已连接 / 用户名未设置时为空操作）
  - ``DELETE /connection``  → 断开连接（未连接时为空操作）

连接与断开都是异步发起的，接口返回时连接通常仍处于 connecting / closing，
需要再次 ``GET /connection`` 观察最终状态。
"""
from fastapi import APIRouter, Depends, Request

from giftrelay.api.deps import get_gift_client
from giftrelay.core.config import settings
from giftrelay.core.rate_limit import limiter
from giftrelay.schemas.api_response import ApiResponse
from giftrelay.schemas.relay_interactions import (
    ConnectRequest,
    ConnectResponseData,
    ConnectionStatusData,
)
from giftrelay.services.gift_client import GiftClient

router: APIRouter = APIRouter()


@router.get(
    "/connection",
    summary="查看礼物流连接状态",
    response_model=ApiResponse[ConnectionStatusData],
)
async def connection_status(client: GiftClient = Depends(get_gift_client)):
    """返回当前连接状态、用户名与最近一次错误。"""
    return ApiResponse.ok(data=client.session.status())


@router.post(
    "/connection",
    summary="连接礼物流",
    response_model=ApiResponse[ConnectResponseData],
)
@limiter.limit(settings.CONNECT_RATE_LIMIT)
async def open_connection(
    request: Request,
    connect_request: ConnectRequest,
    client: GiftClient = Depends(get_gift_client),
):
    """加入指定用户名的直播间礼物流。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        connect_request: 包含用户名的请求体，用户名为空时沿用当前设置。
    """
    accepted = client.session.connect(connect_request.username)
    return ApiResponse.done_or_ignored(
        data=ConnectResponseData(accepted=accepted, status=client.session.status()),
        accepted=accepted,
    )


@router.delete(
    "/connection",
    summary="断开礼物流",
    response_model=ApiResponse[ConnectResponseData],
)
@limiter.limit(settings.CONNECT_RATE_LIMIT)
async def close_connection(
    request: Request,
    client: GiftClient = Depends(get_gift_client),
):
    """请求正常关闭当前连接。"""
    accepted = client.session.disconnect()
    return ApiResponse.done_or_ignored(
        data=ConnectResponseData(accepted=accepted, status=client.session.status()),
        accepted=accepted,
    )
