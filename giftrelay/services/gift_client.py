"""
giftrelay.services.gift_client
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物流客户端 —— 宿主应用的生命周期入口。

- ``start()`` → 读取凭证，用户名已知时发起一次连接
- ``stop()``  → 释放连接

在 FastAPI lifespan 中初始化并挂载于 ``app.state.gift_client``。
"""
from __future__ import annotations

from giftrelay.core.config import Settings
from giftrelay.core.credentials import CredentialStore, get_credential_store
from giftrelay.core.logging import get_logger
from giftrelay.services.connection_session import ConnectionSession, is_unset_username
from giftrelay.services.event_router import EventRouter
from giftrelay.services.transport import TransportFactory, WebSocketTransport

logger = get_logger(__name__)


class GiftClient:
    """组合凭证、分发器与连接会话。

    Attributes:
        credentials: 进程级凭证存储。
        router: 礼物事件分发器，可在连接前后任意时刻订阅。
        session: 唯一的礼物流连接会话。
    """

    def __init__(
        self,
        settings: Settings,
        credentials: CredentialStore | None = None,
        router: EventRouter | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        self.credentials: CredentialStore = credentials or get_credential_store()
        self.router: EventRouter = router or EventRouter()

        def _websocket_factory() -> WebSocketTransport:
            return WebSocketTransport(
                open_timeout=settings.WS_CONNECT_TIMEOUT,
                ping_interval=settings.WS_PING_INTERVAL,
            )

        self.session: ConnectionSession = ConnectionSession(
            base_url=settings.TIKTOK_WS_BASE_URL,
            credentials=self.credentials,
            router=self.router,
            transport_factory=transport_factory or _websocket_factory,
            verbose=settings.TIKTOK_VERBOSE_LOGGING,
        )

    def start(self, username: str | None = None) -> bool:
        """读取凭证，并在用户名已知时连接。

        Args:
            username: 要加入的直播间；为 None 时使用配置中的默认用户名。

        Returns:
            是否发起了连接。
        """
        self.credentials.load()
        target = username if username is not None else self.credentials.default_username
        if is_unset_username(target):
            logger.info("未指定直播间用户名，等待调用方设置后再连接")
            return False
        return self.session.connect(target)

    def stop(self) -> None:
        """释放连接。"""
        self.session.teardown()
