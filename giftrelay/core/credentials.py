"""
giftrelay.core.credentials
~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物流凭证存储 —— 进程启动时从 Settings 读取一次 API Key，之后只读。

空的 API Key 是合法状态：握手时照常发送空字符串，是否放行由服务端决定。
"""
from __future__ import annotations

import threading
from collections.abc import Callable
from functools import lru_cache

from giftrelay.core.config import Settings, get_settings
from giftrelay.core.logging import get_logger, mask_secret

logger = get_logger(__name__)


class CredentialStore:
    """只读的凭证存储。

    ``load()`` 第一次调用时读取配置并缓存，之后始终返回同一个值，
    即使底层配置对象被替换也不会重新读取。

    Attributes:
        default_username: 配置中的默认直播间用户名。
    """

    def __init__(self, source: Callable[[], Settings] = get_settings) -> None:
        self._source = source
        self._lock = threading.Lock()
        self._credential: str | None = None
        self._default_username: str | None = None

    def load(self) -> str:
        """返回 API Key（首次调用时从配置读取）。"""
        with self._lock:
            if self._credential is None:
                self._read_settings()
            return self._credential

    @property
    def default_username(self) -> str:
        with self._lock:
            if self._default_username is None:
                self._read_settings()
            return self._default_username

    def _read_settings(self) -> None:
        cfg = self._source()
        self._credential = cfg.TIKTOK_API_KEY.get_secret_value()
        self._default_username = cfg.TIKTOK_DEFAULT_USERNAME
        if not self._credential:
            logger.warning("未配置 TIKTOK_API_KEY，握手将发送空的 apiKey")
        else:
            logger.info("API Key 已加载 | key=%s", mask_secret(self._credential))


@lru_cache
def get_credential_store() -> CredentialStore:
    """获取进程级 CredentialStore 单例。"""
    return CredentialStore()
