"""
giftrelay.services.relay_broadcaster
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

下游转发广播器 —— 维护订阅礼物的本地 WebSocket 列表，把每个礼物广播出去。

``EventRouter`` 的回调是同步的，这里用一个有界队列把礼物交给
``run()`` 协程，再由它异步广播，避免在回调里等待网络发送。
"""
from __future__ import annotations

import asyncio

from fastapi import WebSocket

from giftrelay.core.logging import get_logger
from giftrelay.schemas.gift_events import GiftEvent
from giftrelay.services.message_codec import encode_gift

logger = get_logger(__name__)


class RelayBroadcaster:
    """下游 WebSocket 广播器。

    Attributes:
        active_connections: 当前在线的所有下游 WebSocket 连接。
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.active_connections: set[WebSocket] = set()
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._loop: asyncio.AbstractEventLoop | None = None

    async def connect(self, websocket: WebSocket) -> None:
        """接受新连接并加入在线集合。"""
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        """从在线集合移除断开的连接。"""
        self.active_connections.discard(websocket)

    def publish_gift(self, event: GiftEvent) -> None:
        """``EventRouter`` 订阅回调：把礼物放入广播队列，队列满时丢弃。

        可以在任意线程调用；不在广播循环所在线程时转交给该事件循环处理。
        """
        message = encode_gift(event)
        if self._loop is not None and not self._in_loop():
            self._loop.call_soon_threadsafe(self._enqueue, message)
        else:
            self._enqueue(message)

    def _in_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _enqueue(self, message: str) -> None:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("广播队列已满，丢弃礼物 | 当前积压: %d", self._queue.qsize())

    async def broadcast(self, message: str) -> None:
        """向所有下游连接广播消息。"""
        targets = list(self.active_connections)
        tasks = [ws.send_text(message) for ws in targets]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning("广播失败，移除断开的连接")
                self.active_connections.discard(ws)

    async def run(self) -> None:
        """广播循环，收到 ``stop()`` 放入的结束信号后退出。"""
        self._loop = asyncio.get_running_loop()
        while True:
            message = await self._queue.get()
            if message is None:
                break
            await self.broadcast(message)

    def stop(self) -> None:
        """让 ``run()`` 在处理完已排队的礼物后退出。须在广播循环所在线程调用。"""
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            logger.warning("广播队列已满，无法放入结束信号")

    @property
    def online_count(self) -> int:
        """当前在线的下游连接数。"""
        return len(self.active_connections)
