"""
giftrelay.api.gift_stream_ws
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

下游礼物订阅 WebSocket 接口。

提供 ``/ws/gifts`` 端点，连接后会收到礼物流中的每一个礼物，
格式为上游相同的 camelCase JSON。客户端发送的内容会被忽略。
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from giftrelay.api.deps import get_broadcaster
from giftrelay.core.logging import get_logger
from giftrelay.services.relay_broadcaster import RelayBroadcaster

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/ws/gifts")
async def gift_stream_endpoint(
    websocket: WebSocket,
    broadcaster: RelayBroadcaster = Depends(get_broadcaster),
) -> None:
    """礼物订阅端点。连接保持期间持续推送礼物 JSON。"""
    await broadcaster.connect(websocket)
    logger.info("下游订阅者已连接 | 在线: %d", broadcaster.online_count)
    try:
        while True:
            # 只用于感知断开
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("下游 WebSocket 异常: %s", e, exc_info=True)
    finally:
        broadcaster.disconnect(websocket)
        logger.info("下游订阅者已断开 | 在线: %d", broadcaster.online_count)
