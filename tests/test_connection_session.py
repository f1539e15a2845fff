"""
tests.test_connection_session
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

ConnectionSession 状态机单元测试。

socket 由 ``FakeTransport`` 代替，回调由测试手动触发。
"""
from __future__ import annotations

import json
import logging
import threading

import pytest

from giftrelay.schemas.gift_events import GiftEvent
from giftrelay.services.connection_session import (
    UNSET_USERNAME,
    ConnectionSession,
    ConnectionState,
)

ROSE_FRAME: str = json.dumps({
    "type": "gift",
    "giftName": "Rose",
    "diamondCount": 1,
    "repeatCount": 3,
    "repeatEnd": False,
})

SESSION_LOGGER: str = "giftrelay.services.connection_session"


def warnings_from(caplog: pytest.LogCaptureFixture) -> list[logging.LogRecord]:
    return [
        r for r in caplog.records
        if r.name == SESSION_LOGGER and r.levelno == logging.WARNING
    ]


# ── connect ───────────────────────────────────────────────────────────

class TestConnect:
    """connect() 的前置条件与地址拼接。"""

    @pytest.mark.parametrize("username", [UNSET_USERNAME, "", "   "])
    def test_unset_username_never_opens(self, session, transport_factory, username) -> None:
        assert session.connect(username) is False
        assert transport_factory.open_count == 0
        assert session.state is ConnectionState.IDLE

    def test_connect_without_username_uses_sentinel(self, session, transport_factory) -> None:
        assert session.connect() is False
        assert transport_factory.open_count == 0

    def test_connect_builds_identity_url(self, session, transport_factory) -> None:
        assert session.connect("alice") is True

        assert transport_factory.open_count == 1
        assert transport_factory.last.url == "wss://gifts.example.test/ws/alice"
        assert session.state is ConnectionState.CONNECTING
        assert session.username == "alice"
        assert session.url == "wss://gifts.example.test/ws/alice"

    def test_username_is_url_quoted(self, session, transport_factory) -> None:
        session.connect("a b/c")

        assert transport_factory.last.url == "wss://gifts.example.test/ws/a%20b%2Fc"

    def test_connect_uses_previously_set_username(self, session, transport_factory) -> None:
        assert session.set_username("alice") is True
        assert session.connect() is True

        assert transport_factory.last.url.endswith("/alice")

    def test_second_connect_while_connecting_is_noop(
        self, session, transport_factory, caplog,
    ) -> None:
        caplog.set_level(logging.WARNING, logger=SESSION_LOGGER)
        session.connect("alice")

        assert session.connect("alice") is False
        assert transport_factory.open_count == 1
        assert len(warnings_from(caplog)) == 1

    @pytest.mark.asyncio
    async def test_second_connect_while_open_is_noop(self, session, transport_factory) -> None:
        session.connect("alice")
        await transport_factory.last.listener.on_open()

        assert session.connect("alice") is False
        assert session.connect("bob") is False
        assert transport_factory.open_count == 1
        assert session.username == "alice"

    def test_open_failure_leaves_session_closed(self, credentials, router) -> None:
        class ExplodingTransport:
            def open(self, url, listener):
                raise RuntimeError("no event loop")

            async def send(self, text):
                raise AssertionError("unreachable")

            def close(self):
                pass

        session = ConnectionSession(
            base_url="wss://gifts.example.test/ws/",
            credentials=credentials,
            router=router,
            transport_factory=ExplodingTransport,
        )

        assert session.connect("alice") is False
        assert session.state is ConnectionState.CLOSED
        assert session.last_error == "no event loop"


# ── 握手与消息 ────────────────────────────────────────────────────────

class TestHandshakeAndMessages:
    """on_open / on_message 行为。"""

    @pytest.mark.asyncio
    async def test_handshake_is_first_and_only_payload(self, session, transport_factory) -> None:
        session.connect("alice")
        transport = transport_factory.last

        await transport.listener.on_open()

        assert session.state is ConnectionState.OPEN
        assert session.is_connected is True
        assert len(transport.sent) == 1
        assert json.loads(transport.sent[0]) == {"apiKey": "k1", "username": "alice"}

    @pytest.mark.asyncio
    async def test_handshake_sent_once_per_open(self, session, transport_factory) -> None:
        session.connect("alice")
        transport = transport_factory.last

        await transport.listener.on_open()
        await transport.listener.on_open()
        await transport.listener.on_message(ROSE_FRAME)

        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_reconnect_sends_new_handshake(self, session, transport_factory) -> None:
        session.connect("alice")
        first = transport_factory.last
        await first.listener.on_open()
        await first.listener.on_close("server restart")

        session.connect()
        second = transport_factory.last
        await second.listener.on_open()

        assert second is not first
        assert len(second.sent) == 1
        assert json.loads(second.sent[0])["username"] == "alice"

    @pytest.mark.asyncio
    async def test_gift_scenario_routes_to_subscribers_in_order(
        self, session, router, transport_factory,
    ) -> None:
        received: list[tuple[str, GiftEvent]] = []
        router.subscribe(lambda e: received.append(("overlay", e)))
        router.subscribe(lambda e: received.append(("counter", e)))

        assert session.connect("alice") is True
        transport = transport_factory.last
        assert transport.url.endswith("/alice")

        await transport.listener.on_open()
        assert transport.sent[0] == '{"apiKey":"k1","username":"alice"}'

        await transport.listener.on_message(ROSE_FRAME)

        assert [name for name, _ in received] == ["overlay", "counter"]
        event = received[0][1]
        assert received[1][1] is event
        assert event.gift_name == "Rose"
        assert event.diamond_count == 1
        assert event.repeat_count == 3
        assert event.repeat_end is False

    @pytest.mark.asyncio
    async def test_malformed_frames_keep_connection_open(
        self, session, router, transport_factory,
    ) -> None:
        received: list[GiftEvent] = []
        router.subscribe(received.append)
        session.connect("alice")
        transport = transport_factory.last
        await transport.listener.on_open()

        for raw in ["not json", "[1, 2]", '{"type": "chat"}', '{"giftName": "Rose"}']:
            await transport.listener.on_message(raw)

        assert received == []
        assert session.state is ConnectionState.OPEN
        assert transport.close_calls == 0

        await transport.listener.on_message(ROSE_FRAME)
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_deeply_nested_frame_keeps_connection_open(
        self, session, router, transport_factory,
    ) -> None:
        received: list[GiftEvent] = []
        router.subscribe(received.append)
        session.connect("alice")
        transport = transport_factory.last
        await transport.listener.on_open()
        deep = "[" * 100000 + "]" * 100000

        await transport.listener.on_message(deep)
        await transport.listener.on_message('{"type":"gift","x":' + deep + "}")

        assert received == []
        assert session.state is ConnectionState.OPEN
        assert transport.close_calls == 0

    @pytest.mark.asyncio
    async def test_verbose_logs_other_messages_at_info(
        self, session, transport_factory, caplog,
    ) -> None:
        caplog.set_level(logging.DEBUG, logger=SESSION_LOGGER)
        session.verbose = True
        session.connect("alice")
        await transport_factory.last.listener.on_open()

        await transport_factory.last.listener.on_message('{"type": "like"}')

        other = [r for r in caplog.records if "like" in r.getMessage()]
        assert other and other[0].levelno == logging.INFO

    @pytest.mark.asyncio
    async def test_handshake_send_failure_is_logged(
        self, session, transport_factory, caplog,
    ) -> None:
        caplog.set_level(logging.ERROR, logger=SESSION_LOGGER)
        session.connect("alice")
        transport = transport_factory.last

        async def broken_send(text: str) -> None:
            raise ConnectionError("socket gone")

        transport.send = broken_send
        await transport.listener.on_open()

        assert any("握手发送失败" in r.getMessage() for r in caplog.records)


# ── 断开 / 关闭 ───────────────────────────────────────────────────────

class TestDisconnectAndClose:
    """disconnect / teardown / on_error / on_close。"""

    @pytest.mark.asyncio
    async def test_disconnect_twice_requests_one_close(
        self, session, transport_factory, caplog,
    ) -> None:
        caplog.set_level(logging.WARNING, logger=SESSION_LOGGER)
        session.connect("alice")
        transport = transport_factory.last
        await transport.listener.on_open()

        assert session.disconnect() is True
        assert session.state is ConnectionState.CLOSING
        assert warnings_from(caplog) == []

        assert session.disconnect() is False
        assert transport.close_calls == 1
        assert len(warnings_from(caplog)) == 1

    def test_disconnect_without_connection_is_noop(self, session, caplog) -> None:
        caplog.set_level(logging.WARNING, logger=SESSION_LOGGER)

        assert session.disconnect() is False
        assert len(warnings_from(caplog)) == 1

    @pytest.mark.asyncio
    async def test_close_failure_rolls_back_to_closed(
        self, session, transport_factory, caplog,
    ) -> None:
        caplog.set_level(logging.ERROR, logger=SESSION_LOGGER)
        session.connect("alice")
        transport = transport_factory.last
        await transport.listener.on_open()

        def broken_close() -> None:
            raise RuntimeError("no running event loop")

        transport.close = broken_close
        results: list[bool] = []
        worker = threading.Thread(target=lambda: results.append(session.disconnect()))
        worker.start()
        worker.join()

        assert results == [False]
        assert session.state is ConnectionState.CLOSED
        assert session.last_error == "no running event loop"
        assert session.close_reason == "close failed"
        assert any("关闭请求失败" in r.getMessage() for r in caplog.records)

        await transport.listener.on_close("late")
        assert session.close_reason == "close failed"
        assert session.connect("alice") is True
        assert transport_factory.open_count == 2

    def test_disconnect_while_connecting_is_noop(self, session, transport_factory) -> None:
        session.connect("alice")

        assert session.disconnect() is False
        assert transport_factory.last.close_calls == 0

    @pytest.mark.asyncio
    async def test_close_callback_finishes_disconnect(self, session, transport_factory) -> None:
        session.connect("alice")
        transport = transport_factory.last
        await transport.listener.on_open()
        session.disconnect()

        await transport.listener.on_close("bye")

        assert session.state is ConnectionState.CLOSED
        assert session.close_reason == "bye"
        assert session.connect("alice") is True
        assert transport_factory.open_count == 2

    @pytest.mark.asyncio
    async def test_error_then_close(self, session, transport_factory) -> None:
        session.connect("alice")
        transport = transport_factory.last

        await transport.listener.on_error(OSError("connection refused"))
        assert session.state is ConnectionState.CONNECTING
        assert session.last_error == "connection refused"

        await transport.listener.on_close("connection refused")
        assert session.state is ConnectionState.CLOSED
        assert session.status().last_error == "connection refused"

    def test_teardown_without_connection_is_safe(self, session) -> None:
        session.teardown()
        session.teardown()

        assert session.state is ConnectionState.IDLE

    @pytest.mark.asyncio
    async def test_teardown_releases_socket_and_ignores_late_callbacks(
        self, session, router, transport_factory,
    ) -> None:
        received: list[GiftEvent] = []
        router.subscribe(received.append)
        session.connect("alice")
        old = transport_factory.last
        await old.listener.on_open()

        session.teardown()

        assert old.close_calls == 1
        assert session.state is ConnectionState.CLOSED
        assert session.close_reason == "teardown"

        await old.listener.on_message(ROSE_FRAME)
        await old.listener.on_close("late")
        assert received == []
        assert session.close_reason == "teardown"

    @pytest.mark.asyncio
    async def test_teardown_while_connecting(self, session, transport_factory) -> None:
        session.connect("alice")
        transport = transport_factory.last

        session.teardown()
        await transport.listener.on_open()

        assert transport.close_calls == 1
        assert transport.sent == []
        assert session.state is ConnectionState.CLOSED


# ── 用户名 ────────────────────────────────────────────────────────────

class TestUsername:
    """用户名在连接存续期间不可修改。"""

    @pytest.mark.asyncio
    async def test_set_username_rejected_while_open(self, session, transport_factory) -> None:
        session.connect("alice")
        await transport_factory.last.listener.on_open()

        assert session.set_username("bob") is False
        assert session.username == "alice"

    @pytest.mark.asyncio
    async def test_set_username_allowed_after_close(self, session, transport_factory) -> None:
        session.connect("alice")
        await transport_factory.last.listener.on_close("bye")

        assert session.set_username("bob") is True
        assert session.connect() is True
        assert transport_factory.last.url.endswith("/bob")

    def test_status_snapshot(self, session, router) -> None:
        router.subscribe(lambda e: None)

        status = session.status()

        assert status.state == "idle"
        assert status.username == UNSET_USERNAME
        assert status.url is None
        assert status.subscribers == 1
