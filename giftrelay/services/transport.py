"""
giftrelay.services.transport
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物流的 socket 传输层抽象。

``ConnectionSession`` 只依赖 ``Transport`` 协议：``open()`` 立即返回，
之后的结果全部通过 ``TransportListener`` 回调送达，顺序固定为：

    on_open → (on_message | on_error)* → on_close（恰好一次）

连接失败（DNS / TCP / TLS / WebSocket 握手）同样只会以 ``on_error`` + ``on_close``
的形式出现，调用方不会在 ``open()`` 处收到异常。

``WebSocketTransport`` 是基于 ``websockets`` asyncio 客户端的真实实现，
测试中可替换为任意满足协议的假实现。
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from giftrelay.core.logging import get_logger

logger = get_logger(__name__)


class TransportListener(Protocol):
    """socket 生命周期回调。"""

    async def on_open(self) -> None: ...

    async def on_message(self, raw: str) -> None: ...

    async def on_error(self, error: BaseException) -> None: ...

    async def on_close(self, reason: str) -> None: ...


class Transport(Protocol):
    """一条物理 socket 连接。每个实例只能 ``open()`` 一次。"""

    def open(self, url: str, listener: TransportListener) -> None: ...

    async def send(self, text: str) -> None: ...

    def close(self) -> None: ...


TransportFactory = Callable[[], Transport]


class WebSocketTransport:
    """基于 ``websockets`` 的 ``Transport`` 实现。

    ``open()`` 在当前事件循环上启动一个读取任务，该任务负责建立连接、
    逐帧回调 ``on_message``，并在任何情况下最终回调一次 ``on_close``。

    Args:
        open_timeout: 建立连接的超时秒数，``None`` 表示一直等待。
        ping_interval: 心跳间隔秒数，``None`` 表示关闭心跳。
    """

    def __init__(
        self,
        open_timeout: float | None = None,
        ping_interval: float | None = 20.0,
    ) -> None:
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._closer: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def open(self, url: str, listener: TransportListener) -> None:
        """在后台开始连接，立即返回。"""
        if self._reader is not None:
            raise RuntimeError("WebSocketTransport 只能 open 一次")
        self._loop = asyncio.get_running_loop()
        self._reader = self._loop.create_task(
            self._run(url, listener), name=f"gift-ws:{url}",
        )

    async def send(self, text: str) -> None:
        """发送一条文本消息。"""
        if self._ws is None:
            raise ConnectionError("WebSocket 尚未建立或已关闭")
        await self._ws.send(text)

    def close(self) -> None:
        """请求关闭连接，立即返回。

        已建立的连接走正常的关闭握手；仍在连接中的则直接取消读取任务。
        可以在任意线程调用；不在读取任务所在线程时转交给该事件循环处理。
        """
        if self._loop is None:
            return
        if self._in_loop():
            self._request_close()
        else:
            self._loop.call_soon_threadsafe(self._request_close)

    def _in_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _request_close(self) -> None:
        if self._ws is not None:
            if self._closer is None:
                self._closer = self._loop.create_task(self._ws.close())
                self._closer.add_done_callback(_log_close_failure)
        elif self._reader is not None and not self._reader.done():
            self._reader.cancel()

    async def _run(self, url: str, listener: TransportListener) -> None:
        reason: str = "cancelled"
        try:
            async with connect(
                url,
                open_timeout=self.open_timeout,
                ping_interval=self.ping_interval,
            ) as ws:
                self._ws = ws
                await listener.on_open()
                async for message in ws:
                    if isinstance(message, bytes):
                        message = message.decode("utf-8", errors="replace")
                    await listener.on_message(message)
                reason = ws.close_reason or f"code={ws.close_code}"
        except ConnectionClosed as e:
            reason = str(e)
            await listener.on_error(e)
        except Exception as e:
            # DNS / TCP / TLS / 握手失败都在这里
            reason = str(e) or type(e).__name__
            await listener.on_error(e)
        finally:
            self._ws = None
            await listener.on_close(reason)


def _log_close_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("WebSocket 关闭握手失败: %s", error, exc_info=error)
