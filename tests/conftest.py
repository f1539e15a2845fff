"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用假的 socket 传输替换真实 WebSocket，
使单元测试可在无网络环境下快速运行。
"""
from __future__ import annotations

import os

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ.setdefault("TIKTOK_DEFAULT_USERNAME", "unset")

from giftrelay.core.config import Settings  # noqa: E402
from giftrelay.core.credentials import CredentialStore  # noqa: E402
from giftrelay.services.event_router import EventRouter  # noqa: E402
from giftrelay.services.connection_session import ConnectionSession  # noqa: E402
from giftrelay.services.transport import TransportListener  # noqa: E402

BASE_URL: str = "wss://gifts.example.test/ws/"


# ── 假传输层 ──────────────────────────────────────────────────────────

class FakeTransport:
    """记录 open / send / close 调用的假 socket，回调由测试手动触发。"""

    def __init__(self) -> None:
        self.url: str | None = None
        self.listener: TransportListener | None = None
        self.sent: list[str] = []
        self.open_calls: int = 0
        self.close_calls: int = 0

    def open(self, url: str, listener: TransportListener) -> None:
        self.open_calls += 1
        self.url = url
        self.listener = listener

    async def send(self, text: str) -> None:
        self.sent.append(text)

    def close(self) -> None:
        self.close_calls += 1


class FakeTransportFactory:
    """每次调用返回一个新的 ``FakeTransport`` 并记录下来。"""

    def __init__(self) -> None:
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport()
        self.created.append(transport)
        return transport

    @property
    def open_count(self) -> int:
        return sum(t.open_calls for t in self.created)

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


def make_settings(**overrides: object) -> Settings:
    """构造不读取 .env 的测试配置。"""
    values: dict[str, object] = {
        "TIKTOK_API_KEY": "k1",
        "TIKTOK_DEFAULT_USERNAME": "unset",
        "TIKTOK_WS_BASE_URL": BASE_URL,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture()
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture()
def credentials() -> CredentialStore:
    """API Key 为 ``k1`` 的凭证存储。"""
    cfg = make_settings()
    return CredentialStore(source=lambda: cfg)


@pytest.fixture()
def router() -> EventRouter:
    return EventRouter()


@pytest.fixture()
def session(
    credentials: CredentialStore,
    router: EventRouter,
    transport_factory: FakeTransportFactory,
) -> ConnectionSession:
    return ConnectionSession(
        base_url=BASE_URL,
        credentials=credentials,
        router=router,
        transport_factory=transport_factory,
    )


@pytest.fixture()
def settings_factory():
    """返回 ``make_settings``，供测试按需覆盖配置项。"""
    return make_settings
