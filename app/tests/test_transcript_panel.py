"""
实时转写面板测试
"""

import asyncio
from datetime import date

import pytest

from app.core.exceptions import ValidationException
from app.services.relay import RelayConnectionState
from app.services.transcript_panel import ConnectionStatus, SaveStatus, TranscriptPanel


class TestPanelSession:
    """会话控制"""

    @pytest.mark.asyncio
    async def test_start(self, panel, relay, transport_factory):
        assert await panel.start() is True

        assert panel.connection_status == ConnectionStatus.CONNECTED
        assert panel.is_real_mode is True
        assert relay.current_channel == "kolkata-news"
        assert transport_factory.current.sent == [
            ("start_transcription", {"channelId": "kolkata-news", "filterPolitical": False})
        ]

    @pytest.mark.asyncio
    async def test_start_failure(self, panel, transport_factory):
        transport_factory.transport_kwargs["connect_error"] = OSError("connection refused")

        assert await panel.start() is False

        assert panel.connection_status == ConnectionStatus.ERROR
        assert panel.is_real_mode is False

    @pytest.mark.asyncio
    async def test_start_requires_channel(self, relay, store):
        panel = TranscriptPanel(relay, store, channel_name="Unconfigured")
        try:
            with pytest.raises(ValidationException):
                await panel.start()
        finally:
            await panel.close()

    @pytest.mark.asyncio
    async def test_cannot_switch_channel_while_streaming(self, panel):
        await panel.start()
        with pytest.raises(ValidationException):
            panel.set_channel("Delhi Live", "delhi-live")

        await panel.stop()
        panel.set_channel("Delhi Live", "delhi-live")
        assert (panel.channel_name, panel.channel_id) == ("Delhi Live", "delhi-live")

    @pytest.mark.asyncio
    async def test_stop(self, panel, relay, transport_factory):
        await panel.start()
        await panel.stop()

        assert panel.connection_status == ConnectionStatus.DISCONNECTED
        assert panel.is_real_mode is False
        assert relay.state == RelayConnectionState.DISCONNECTED
        assert transport_factory.current.sent_events() == ["start_transcription", "stop_transcription"]

    @pytest.mark.asyncio
    async def test_stop_during_start(self, panel, relay, transport_factory):
        """start 还在握手时 stop，start 返回 False 且不发送开始命令"""
        transport_factory.transport_kwargs["connect_delay"] = 0.1

        starting = asyncio.create_task(panel.start())
        await asyncio.sleep(0.03)
        await panel.stop()

        assert await starting is False
        assert panel.connection_status == ConnectionStatus.DISCONNECTED
        assert panel.is_real_mode is False
        assert relay.state == RelayConnectionState.DISCONNECTED
        assert relay.current_channel is None
        assert transport_factory.current.sent == []
        assert transport_factory.current.closed

    @pytest.mark.asyncio
    async def test_toggle_filter_restarts_session(self, panel, transport_factory):
        await panel.start()
        first = transport_factory.current

        assert await panel.toggle_filter() is True

        second = transport_factory.current
        assert second is not first
        assert first.sent_events() == ["start_transcription", "stop_transcription"]
        assert first.closed
        assert second.sent == [
            ("start_transcription", {"channelId": "kolkata-news", "filterPolitical": True})
        ]
        assert panel.is_real_mode is True
        assert panel.filter_political is True

    @pytest.mark.asyncio
    async def test_toggle_filter_when_idle(self, panel, transport_factory):
        messages = []
        panel.updates.subscribe(messages.append)

        assert await panel.toggle_filter() is True

        assert transport_factory.created == []
        assert messages[-1]["type"] == "state"
        assert messages[-1]["state"]["filter_political"] is True

    @pytest.mark.asyncio
    async def test_server_close_while_streaming(self, panel, transport_factory, wait_until):
        await panel.start()
        transport_factory.current.end()

        await wait_until(lambda: panel.connection_status == ConnectionStatus.DISCONNECTED)
        assert panel.is_real_mode is False

    @pytest.mark.asyncio
    async def test_relay_error(self, panel, transport_factory, wait_until):
        messages = []
        panel.updates.subscribe(messages.append)
        await panel.start()

        transport_factory.current.push("transcription_error", {"channelId": "kolkata-news", "error": "stream lost"})
        await wait_until(lambda: panel.connection_status == ConnectionStatus.ERROR)

        errors = [m for m in messages if m["type"] == "error"]
        assert errors == [{"type": "error", "error": {"channelId": "kolkata-news", "error": "stream lost"}}]


class TestPanelBuffer:
    """缓冲区与搜索"""

    @pytest.mark.asyncio
    async def test_buffer_keeps_latest_lines(self, panel, transport_factory, wait_until, test_data_factory):
        panel.set_auto_save(False)
        await panel.start()

        for i in range(75):
            transport_factory.current.push("transcript", test_data_factory.line_payload(id=f"line-{i}"))
        await wait_until(lambda: panel.lines and panel.lines[-1].id == "line-74")

        assert len(panel.lines) == 50
        assert [line.id for line in panel.lines] == [f"line-{i}" for i in range(25, 75)]
        assert panel.saved_count == 0

    @pytest.mark.asyncio
    async def test_start_clears_buffer(self, panel, transport_factory, wait_until, test_data_factory):
        panel.set_auto_save(False)
        await panel.start()
        transport_factory.current.push("transcript", test_data_factory.line_payload())
        await wait_until(lambda: len(panel.lines) == 1)

        await panel.stop()
        await panel.start()
        assert len(panel.lines) == 0

    @pytest.mark.asyncio
    async def test_search(self, panel, transport_factory, wait_until, test_data_factory):
        panel.set_auto_save(False)
        await panel.start()
        transport = transport_factory.current
        transport.push("transcript", test_data_factory.line_payload(id="1", english="Mamata visits KOLKATA port"))
        transport.push("transcript", test_data_factory.line_payload(id="2", english="BJP rally", bengali="কলকাতা"))
        transport.push("transcript", test_data_factory.line_payload(id="3", english="Weather report"))
        await wait_until(lambda: len(panel.lines) == 3)

        assert [line.id for line in panel.search("kolkata")] == ["1"]
        assert [line.id for line in panel.search("কলকাতা")] == ["2"]
        assert len(panel.search("")) == 3
        assert len(panel.lines) == 3

        state = panel.snapshot(search="rally")
        assert [line.id for line in state.lines] == ["2"]

    @pytest.mark.asyncio
    async def test_search_normalizes_bengali_encoding(self, panel, test_data_factory):
        panel.lines.append(test_data_factory.line(id="dev", bengali="মমতা উন্ন\u09dfন"))
        panel.lines.append(test_data_factory.line(id="other", bengali="কলকাতা"))

        assert [line.id for line in panel.search("উন্ন\u09af\u09bcন")] == ["dev"]
        assert [line.id for line in panel.search("উন্ন\u09dfন")] == ["dev"]

    @pytest.mark.asyncio
    async def test_export_text(self, panel, test_data_factory):
        panel.lines.append(test_data_factory.line(timestamp="10:15:00 AM", bengali="কলকাতা", english="Kolkata"))
        panel.lines.append(test_data_factory.line(timestamp="10:15:05 AM", hindi="कोलकाता", english="Rain"))

        assert panel.export_text() == (
            "[10:15:00 AM]\nBengali: কলকাতা\nHindi: \nEnglish: Kolkata\n"
            "\n---\n"
            "[10:15:05 AM]\nBengali: \nHindi: कोलकाता\nEnglish: Rain\n"
        )
        assert panel.export_filename(date(2024, 5, 1)) == "transcript-Kolkata News-2024-05-01.txt"

    @pytest.mark.asyncio
    async def test_export_empty_buffer(self, panel):
        assert panel.export_text() == ""

    @pytest.mark.asyncio
    async def test_line_updates_use_wire_names(self, panel, transport_factory, wait_until, test_data_factory):
        messages = []
        panel.updates.subscribe(messages.append)
        panel.set_auto_save(False)
        await panel.start()

        transport_factory.current.push("transcript", test_data_factory.line_payload(bjpMention=True))
        await wait_until(lambda: any(m["type"] == "line" for m in messages))

        line_message = next(m for m in messages if m["type"] == "line")
        assert line_message["line"]["bjpMention"] is True
        assert line_message["line"]["english"] == "Traffic update from Howrah bridge"


class TestPanelAutoSave:
    """自动保存"""

    @pytest.mark.asyncio
    async def test_auto_save(self, panel, store, transport_factory, wait_until, test_data_factory):
        await panel.start()
        for i in range(3):
            transport_factory.current.push("transcript", test_data_factory.line_payload(id=f"line-{i}"))
        await wait_until(lambda: len(panel.lines) == 3)
        await panel.wait_for_pending_saves()

        assert panel.saved_count == 3
        assert panel.save_status == SaveStatus.IDLE
        records = (await store.query()).data
        assert {r.channel_name for r in records} == {"Kolkata News"}
        assert {r.channel_id for r in records} == {"kolkata-news"}

    @pytest.mark.asyncio
    async def test_save_failure_keeps_line(
        self, panel, transport_factory, wait_until, drop_transcripts_table, test_data_factory
    ):
        await drop_transcripts_table()
        await panel.start()

        transport_factory.current.push("transcript", test_data_factory.line_payload())
        await wait_until(lambda: len(panel.lines) == 1)
        await panel.wait_for_pending_saves()

        assert panel.save_status == SaveStatus.ERROR
        assert panel.saved_count == 0
        assert panel.connection_status == ConnectionStatus.CONNECTED
        assert len(panel.lines) == 1


class TestPanelStoreLoad:
    """从存储回填"""

    @pytest.mark.asyncio
    async def test_load_from_store(self, panel, store, transport_factory, wait_until, test_data_factory):
        for text in ("first", "second", "third"):
            await store.save("Kolkata News", None, test_data_factory.line(english=text))

        assert await panel.load_from_store() == 3

        assert [line.english for line in panel.lines] == ["first", "second", "third"]
        assert panel.store_count == 3
        assert panel.is_loading_from_store is False

        panel.set_auto_save(False)
        await panel.start()
        assert len(panel.lines) == 0

    @pytest.mark.asyncio
    async def test_load_limit(self, panel, store, test_data_factory):
        for i in range(5):
            await store.save("Kolkata News", None, test_data_factory.line(english=f"line {i}"))

        assert await panel.load_from_store(limit=2) == 2
        assert [line.english for line in panel.lines] == ["line 3", "line 4"]

    @pytest.mark.asyncio
    async def test_load_failure(self, panel, drop_transcripts_table):
        messages = []
        panel.updates.subscribe(messages.append)
        await drop_transcripts_table()

        assert await panel.load_from_store() == 0

        assert panel.store_count == 0
        assert panel.is_loading_from_store is False
        loading_flags = [m["state"]["is_loading_from_store"] for m in messages if m["type"] == "state"]
        assert loading_flags == [True, False]
