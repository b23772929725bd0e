"""
转写中继客户端测试
"""

import asyncio

import pytest

from app.core.exceptions import RelayConnectionException, RelayNotConnectedException
from app.services.relay import RelayConnectionState, TranscriptRelayClient

from conftest import FakeTransportFactory


class TestRelayConnection:
    """连接生命周期"""

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, relay, transport_factory):
        states = []
        relay.on_connection_change(states.append)

        await relay.connect()
        await relay.connect()

        assert relay.is_connected
        assert transport_factory.handshakes == 1
        assert states == [RelayConnectionState.CONNECTING, RelayConnectionState.CONNECTED]

    @pytest.mark.asyncio
    async def test_concurrent_connect_single_handshake(self):
        factory = FakeTransportFactory(connect_delay=0.02)
        relay = TranscriptRelayClient(factory, connect_timeout=1.0)
        try:
            await asyncio.gather(relay.connect(), relay.connect(), relay.connect())
            assert relay.is_connected
            assert factory.handshakes == 1
        finally:
            await relay.disconnect()

    @pytest.mark.asyncio
    async def test_connect_failure_enters_error(self):
        factory = FakeTransportFactory(connect_error=OSError("connection refused"))
        relay = TranscriptRelayClient(factory, connect_timeout=1.0)

        with pytest.raises(RelayConnectionException):
            await relay.connect()

        assert relay.state == RelayConnectionState.ERROR
        assert not relay.is_connected
        assert factory.current.closed

    @pytest.mark.asyncio
    async def test_connect_timeout_enters_error(self):
        factory = FakeTransportFactory(connect_delay=1.0)
        relay = TranscriptRelayClient(factory, connect_timeout=0.05)

        with pytest.raises(RelayConnectionException):
            await relay.connect()

        assert relay.state == RelayConnectionState.ERROR

    @pytest.mark.asyncio
    async def test_reconnect_after_error(self, relay, transport_factory):
        """error 状态下可以重新连接"""
        transport_factory.transport_kwargs["connect_error"] = OSError("down")
        with pytest.raises(RelayConnectionException):
            await relay.connect()

        transport_factory.transport_kwargs.clear()
        await relay.connect()
        assert relay.state == RelayConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_clears_channel(self, relay, transport_factory):
        await relay.connect()
        await relay.start_transcription("kolkata-news")
        transport = transport_factory.current

        await relay.disconnect()

        assert relay.state == RelayConnectionState.DISCONNECTED
        assert relay.current_channel is None
        assert transport.closed

    @pytest.mark.asyncio
    async def test_disconnect_during_handshake_wins(self):
        """握手期间断开，握手完成后不应再进入 connected"""
        factory = FakeTransportFactory(connect_delay=0.2)
        relay = TranscriptRelayClient(factory, connect_timeout=1.0)
        states = []
        relay.on_connection_change(states.append)

        pending = asyncio.create_task(relay.connect())
        await asyncio.sleep(0.05)
        await relay.disconnect()

        with pytest.raises(RelayConnectionException):
            await pending

        assert relay.state == RelayConnectionState.DISCONNECTED
        assert not relay.is_connected
        assert factory.current.closed
        assert RelayConnectionState.CONNECTED not in states

        factory.transport_kwargs["connect_delay"] = 0.0
        try:
            await relay.connect()
            assert relay.is_connected
            assert factory.handshakes == 2
        finally:
            await relay.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_when_idle_is_noop(self, relay):
        states = []
        relay.on_connection_change(states.append)
        await relay.disconnect()
        assert states == []


class TestRelayCommands:
    """开始/停止命令"""

    @pytest.mark.asyncio
    async def test_start_before_connect_raises(self, relay, transport_factory):
        with pytest.raises(RelayNotConnectedException):
            await relay.start_transcription("kolkata-news")
        assert transport_factory.created == []
        assert relay.current_channel is None

    @pytest.mark.asyncio
    async def test_start_sends_channel_and_filter(self, relay, transport_factory):
        await relay.connect()
        await relay.start_transcription("kolkata-news", filter_political=True)

        assert transport_factory.current.sent == [
            ("start_transcription", {"channelId": "kolkata-news", "filterPolitical": True})
        ]
        assert relay.current_channel == "kolkata-news"

    @pytest.mark.asyncio
    async def test_stop_without_channel_sends_nothing(self, relay, transport_factory):
        await relay.connect()
        await relay.stop_transcription()
        assert transport_factory.current.sent == []

    @pytest.mark.asyncio
    async def test_stop_after_start(self, relay, transport_factory):
        await relay.connect()
        await relay.start_transcription("kolkata-news")
        await relay.stop_transcription()

        assert transport_factory.current.sent_events() == ["start_transcription", "stop_transcription"]
        assert transport_factory.current.sent[-1][1] == {"channelId": "kolkata-news"}
        assert relay.current_channel is None

    @pytest.mark.asyncio
    async def test_send_failure_reports_error(self, relay, transport_factory):
        """发送失败不抛出，转为 error 状态并通知订阅者"""
        transport_factory.transport_kwargs["send_error"] = ConnectionResetError("reset by peer")
        errors = []
        relay.on_error(errors.append)

        await relay.connect()
        await relay.start_transcription("kolkata-news")

        assert relay.state == RelayConnectionState.ERROR
        assert relay.current_channel is None
        assert [(e.channel_id, e.error) for e in errors] == [("kolkata-news", "reset by peer")]


class TestRelayEvents:
    """入站事件分发"""

    @pytest.mark.asyncio
    async def test_transcripts_delivered_in_order_to_all_subscribers(
        self, relay, transport_factory, wait_until, test_data_factory
    ):
        first, second = [], []
        relay.on_transcript(first.append)
        unsubscribe_second = relay.on_transcript(second.append)

        await relay.connect()
        transport = transport_factory.current
        transport.push("transcript", test_data_factory.line_payload(id="a"))
        transport.push("transcript", test_data_factory.line_payload(id="b"))
        await wait_until(lambda: len(first) == 2)

        unsubscribe_second()
        transport.push("transcript", test_data_factory.line_payload(id="c"))
        await wait_until(lambda: len(first) == 3)

        assert [line.id for line in first] == ["a", "b", "c"]
        assert [line.id for line in second] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_id_is_assigned(self, relay, transport_factory, wait_until, test_data_factory):
        lines = []
        relay.on_transcript(lines.append)
        await relay.connect()

        payload = test_data_factory.line_payload(bjpMention=True)
        del payload["id"]
        transport_factory.current.push("transcript", payload)
        transport_factory.current.push("transcript", dict(payload))
        await wait_until(lambda: len(lines) == 2)

        assert lines[0].id and lines[1].id
        assert lines[0].id != lines[1].id
        assert lines[0].bjp_mention is True

    @pytest.mark.asyncio
    async def test_invalid_payload_is_dropped(self, relay, transport_factory, wait_until, test_data_factory):
        lines = []
        relay.on_transcript(lines.append)
        await relay.connect()

        transport_factory.current.push("transcript", "not an object")
        transport_factory.current.push("transcript", test_data_factory.line_payload(id="ok"))
        await wait_until(lambda: len(lines) == 1)

        assert lines[0].id == "ok"
        assert relay.is_connected

    @pytest.mark.asyncio
    async def test_status_and_error_events(self, relay, transport_factory, wait_until):
        statuses, errors = [], []
        relay.on_status(statuses.append)
        relay.on_error(errors.append)
        await relay.connect()

        transport = transport_factory.current
        transport.push("transcription_status", {
            "channelId": "kolkata-news", "status": "capturing", "message": "capturing audio"
        })
        transport.push("transcription_error", {"channelId": "kolkata-news", "error": "chunk failed"})
        transport.push("error", {"message": "rate limited"})
        await wait_until(lambda: len(errors) == 2)

        assert statuses[0].status == "capturing"
        assert statuses[0].channel_id == "kolkata-news"
        assert (errors[0].channel_id, errors[0].error) == ("kolkata-news", "chunk failed")
        assert (errors[1].channel_id, errors[1].error) == ("unknown", "rate limited")

    @pytest.mark.asyncio
    async def test_server_close_enters_disconnected(self, relay, transport_factory, wait_until):
        await relay.connect()
        transport_factory.current.end()
        await wait_until(lambda: relay.state == RelayConnectionState.DISCONNECTED)
        assert not relay.is_connected

    @pytest.mark.asyncio
    async def test_transport_failure_enters_error(self, relay, transport_factory, wait_until):
        errors = []
        relay.on_error(errors.append)
        await relay.connect()
        await relay.start_transcription("kolkata-news")

        transport_factory.current.fail(ConnectionResetError("stream lost"))
        await wait_until(lambda: relay.state == RelayConnectionState.ERROR)

        assert [(e.channel_id, e.error) for e in errors] == [("kolkata-news", "stream lost")]

    @pytest.mark.asyncio
    async def test_subscriptions_survive_reconnect(self, relay, transport_factory, wait_until, test_data_factory):
        lines = []
        relay.on_transcript(lines.append)

        await relay.connect()
        await relay.disconnect()
        await relay.connect()

        transport_factory.current.push("transcript", test_data_factory.line_payload(id="after"))
        await wait_until(lambda: len(lines) == 1)
        assert len(transport_factory.created) == 2

    @pytest.mark.asyncio
    async def test_close_removes_subscriptions(self, transport_factory):
        relay = TranscriptRelayClient(transport_factory, connect_timeout=1.0)
        relay.on_transcript(lambda line: None)
        relay.on_error(lambda error: None)

        await relay.connect()
        await relay.close()

        assert len(relay.transcripts) == 0
        assert len(relay.errors) == 0
        assert relay.state == RelayConnectionState.DISCONNECTED
