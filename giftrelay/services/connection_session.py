"""
giftrelay.services.connection_session
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物流连接会话 —— 一个进程只维护一条到礼物服务的 WebSocket 连接。

状态机::

    IDLE ──connect()──▶ CONNECTING ──on_open──▶ OPEN ──disconnect()──▶ CLOSING
                              │                   │                       │
                              └───────on_close────┴───────on_close────────┴──▶ CLOSED

- ``connect()`` / ``disconnect()`` / ``teardown()`` 只发起异步操作，立即返回
- 连接建立后先发送一次握手 ``{"apiKey", "username"}``，再处理任何其他流量
- 单帧解码失败只记录日志，不会断开连接
- 不做任何自动重连，是否重连由调用方决定
"""
from __future__ import annotations

import enum
import threading
from urllib.parse import quote

from giftrelay.core.credentials import CredentialStore
from giftrelay.core.logging import get_logger
from giftrelay.schemas.gift_events import GiftEvent
from giftrelay.schemas.relay_interactions import ConnectionStatusData
from giftrelay.services.event_router import EventRouter
from giftrelay.services.message_codec import decode_frame, encode_handshake
from giftrelay.services.transport import Transport, TransportFactory

logger = get_logger(__name__)

# 用户名为该值时不连接
UNSET_USERNAME: str = "unset"


class ConnectionState(str, enum.Enum):
    """连接状态。出错断开与正常断开都归为 ``CLOSED``。"""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


_ACTIVE_STATES = frozenset(
    {ConnectionState.CONNECTING, ConnectionState.OPEN, ConnectionState.CLOSING},
)


def is_unset_username(username: str | None) -> bool:
    """用户名是否为未设置（哨兵值或空白）。"""
    return username is None or not username.strip() or username == UNSET_USERNAME


class _SocketListener:
    """把某一条 socket 的回调转发给会话。

    会话已经换了新连接（或被 teardown）之后，旧 socket 迟到的回调会被丢弃。
    """

    def __init__(self, session: ConnectionSession, transport: Transport) -> None:
        self._session = session
        self._transport = transport

    async def on_open(self) -> None:
        if self._session._is_current(self._transport):
            await self._session.on_open()

    async def on_message(self, raw: str) -> None:
        if self._session._is_current(self._transport):
            await self._session.on_message(raw)

    async def on_error(self, error: BaseException) -> None:
        if self._session._is_current(self._transport):
            await self._session.on_error(error)

    async def on_close(self, reason: str) -> None:
        if self._session._is_current(self._transport):
            await self._session.on_close(reason)


class ConnectionSession:
    """礼物流连接会话。

    Attributes:
        base_url: WebSocket 基础地址，最终地址为 ``base_url + username``。
        credentials: 握手时读取 API Key 的凭证存储。
        router: 解码出的礼物事件经由它分发给订阅者。
        verbose: 为 True 时以 INFO 级别记录非礼物消息。
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        router: EventRouter,
        transport_factory: TransportFactory,
        username: str = UNSET_USERNAME,
        verbose: bool = False,
    ) -> None:
        self.base_url = base_url
        self.credentials = credentials
        self.router = router
        self.verbose = verbose
        self._transport_factory = transport_factory

        self._lock = threading.Lock()
        self._state: ConnectionState = ConnectionState.IDLE
        self._transport: Transport | None = None
        self._username: str = username
        self._url: str | None = None
        self._handshake_sent: bool = False
        self.close_reason: str | None = None
        self.last_error: str | None = None

    # ── 只读状态 ──────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def username(self) -> str:
        with self._lock:
            return self._username

    @property
    def url(self) -> str | None:
        """最近一次连接的完整地址。"""
        with self._lock:
            return self._url

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.OPEN

    def status(self) -> ConnectionStatusData:
        """返回当前连接状态快照。"""
        with self._lock:
            return ConnectionStatusData(
                state=self._state.value,
                username=self._username,
                url=self._url,
                close_reason=self.close_reason,
                last_error=self.last_error,
                subscribers=self.router.subscriber_count,
            )

    # ── 调用方操作 ────────────────────────────────────────────────────

    def set_username(self, username: str) -> bool:
        """设置要加入的直播间用户名。连接存续期间不允许修改。

        Returns:
            是否设置成功。
        """
        with self._lock:
            if self._state in _ACTIVE_STATES:
                logger.warning(
                    "连接存续期间不能修改用户名 | 当前=%s | 请求=%s",
                    self._username, username,
                )
                return False
            self._username = username
        logger.info("用户名已设置: %s", username)
        return True

    def build_url(self, username: str) -> str:
        """拼接礼物流地址 ``base_url + username``。"""
        return self.base_url + quote(username, safe="")

    def connect(self, username: str | None = None) -> bool:
        """发起连接（异步，立即返回）。

        以下情况记录警告并直接返回 ``False``：
          - 已在连接中 / 已连接 / 正在关闭
          - 用户名为 ``unset`` 或空白

        Args:
            username: 要加入的直播间；为 None 时使用已设置的用户名。

        Returns:
            是否真正发起了一次连接。
        """
        with self._lock:
            if self._state in _ACTIVE_STATES:
                logger.warning("已存在连接，忽略本次 connect | state=%s", self._state.value)
                return False

            target = self._username if username is None else username
            if is_unset_username(target):
                logger.warning("用户名未设置（%r），不发起连接", target)
                return False

            self._username = target
            self._url = self.build_url(target)
            self._state = ConnectionState.CONNECTING
            self._handshake_sent = False
            self.close_reason = None
            self.last_error = None
            transport = self._transport_factory()
            self._transport = transport
            url = self._url

        logger.info("正在连接礼物流: %s", url)
        try:
            transport.open(url, _SocketListener(self, transport))
        except Exception as e:
            logger.error("发起连接失败: %s", e, exc_info=True)
            with self._lock:
                if self._transport is transport:
                    self._transport = None
                    self._state = ConnectionState.CLOSED
                    self.last_error = str(e)
                    self.close_reason = "open failed"
            return False
        return True

    def disconnect(self) -> bool:
        """请求正常关闭当前连接。未处于 OPEN 时为空操作。

        Returns:
            是否真正发出了关闭请求。
        """
        with self._lock:
            if self._state is not ConnectionState.OPEN or self._transport is None:
                logger.warning("当前没有可断开的连接 | state=%s", self._state.value)
                return False
            self._state = ConnectionState.CLOSING
            transport = self._transport

        logger.info("正在断开礼物流连接")
        try:
            transport.close()
        except Exception as e:
            logger.error("关闭请求失败，放弃该连接: %s", e, exc_info=True)
            with self._lock:
                if self._transport is transport:
                    self._transport = None
                    self._state = ConnectionState.CLOSED
                    self.last_error = str(e)
                    self.close_reason = "close failed"
            return False
        return True

    def teardown(self) -> None:
        """无条件关闭并释放 socket，用于进程退出。从未连接过也可以安全调用。"""
        with self._lock:
            transport = self._transport
            self._transport = None
            if self._state is not ConnectionState.IDLE:
                self._state = ConnectionState.CLOSED
            if transport is not None:
                self.close_reason = "teardown"

        if transport is None:
            return
        logger.info("释放礼物流连接")
        try:
            transport.close()
        except Exception as e:
            logger.warning("关闭 socket 失败: %s", e, exc_info=True)

    # ── socket 回调 ───────────────────────────────────────────────────

    def _is_current(self, transport: Transport) -> bool:
        with self._lock:
            return self._transport is transport

    async def on_open(self) -> None:
        """连接建立：切换到 OPEN 并立即发送握手。"""
        with self._lock:
            transport = self._transport
            if transport is None or self._handshake_sent:
                return
            if self._state is ConnectionState.CONNECTING:
                self._state = ConnectionState.OPEN
            self._handshake_sent = True
            username = self._username
            url = self._url

        logger.info("已连接礼物流: %s", url)
        handshake = encode_handshake(self.credentials.load(), username)
        try:
            await transport.send(handshake)
        except Exception as e:
            # 随后会收到 on_close
            logger.error("握手发送失败: %s", e, exc_info=True)
            return
        logger.info("握手已发送 | username=%s", username)

    async def on_message(self, raw: str) -> None:
        """收到一帧：礼物事件分发给订阅者，其余消息仅记录。"""
        event = decode_frame(raw)
        if isinstance(event, GiftEvent):
            logger.info(
                "收到礼物 | from=%s | gift=%s | x%d",
                event.nickname or event.unique_id, event.gift_name, event.repeat_count,
            )
            self.router.publish(event)
            return

        if event.tag == "malformed":
            logger.warning("消息解析失败，已忽略: %.200s", event.payload)
        elif self.verbose:
            logger.info("收到其他消息 [%s]: %.200s", event.tag, event.payload)
        else:
            logger.debug("收到其他消息 [%s]: %.200s", event.tag, event.payload)

    async def on_error(self, error: BaseException) -> None:
        """传输层错误：只记录，状态由随后的 on_close 推进。"""
        with self._lock:
            self.last_error = str(error) or type(error).__name__
        logger.error("礼物流 WebSocket 错误: %s", error)

    async def on_close(self, reason: str) -> None:
        """连接关闭：切换到 CLOSED 并释放 socket。"""
        with self._lock:
            self._state = ConnectionState.CLOSED
            self._transport = None
            self.close_reason = reason
        logger.info("礼物流连接已断开 | 原因: %s", reason or "-")
