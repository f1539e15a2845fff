"""
giftrelay.services.event_router
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物事件分发器 —— 外部组件订阅礼物事件的唯一入口，与连接的建立/断开无关。
"""
from __future__ import annotations

import threading
from collections.abc import Callable

from giftrelay.core.logging import get_logger
from giftrelay.schemas.gift_events import GiftEvent

logger = get_logger(__name__)

GiftHandler = Callable[[GiftEvent], None]


class EventRouter:
    """同步的礼物事件分发器。

    - 按订阅顺序同步调用每个处理函数
    - 没有订阅者时事件直接丢弃，不做缓冲
    - 分发时遍历订阅列表的快照，处理函数内部增删订阅不会影响本次分发
    - 单个处理函数抛出异常只记录日志，不影响后续处理函数
    """

    def __init__(self) -> None:
        self._handlers: list[GiftHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: GiftHandler) -> None:
        """注册礼物处理函数。"""
        with self._lock:
            self._handlers.append(handler)

    def unsubscribe(self, handler: GiftHandler) -> None:
        """移除礼物处理函数；未注册时为空操作。"""
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    @property
    def subscriber_count(self) -> int:
        """当前订阅者数量。"""
        with self._lock:
            return len(self._handlers)

    def publish(self, event: GiftEvent) -> None:
        """把礼物事件分发给所有订阅者。"""
        with self._lock:
            handlers = list(self._handlers)

        if not handlers:
            logger.debug("无订阅者，丢弃礼物事件 | gift=%s", event.gift_name)
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.warning("礼物处理函数执行失败: %s", e, exc_info=True)
