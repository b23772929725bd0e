"""
实时转写面板状态机

连接状态: disconnected -> connecting -> connected，或 error；与 is_loading_from_store 正交。
面板只保留最近 N 行（FIFO 淘汰），每行可选地在独立任务中自动保存，保存结果不影响实时流。
"""

import asyncio
from collections import deque
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

from app.core.events import EventChannel, Unsubscribe
from app.core.exceptions import CampaignIntelException, ValidationException
from app.core.logging import panel_logger
from app.schemas.live import PanelState
from app.schemas.transcript import RelayError, TranscriptionStatus, TranscriptLine
from app.services.relay import RelayConnectionState, TranscriptRelayClient
from app.services.transcript_store import TranscriptStore


class ConnectionStatus(str, Enum):
    """面板连接状态"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class SaveStatus(str, Enum):
    """自动保存状态"""
    IDLE = "idle"
    SAVING = "saving"
    ERROR = "error"


class TranscriptPanel:
    """实时转写面板"""

    def __init__(
        self,
        relay: TranscriptRelayClient,
        store: TranscriptStore,
        channel_name: str,
        channel_id: Optional[str] = None,
        max_lines: int = 50,
        restart_delay: float = 0.5,
        auto_save: bool = True,
    ):
        self.relay = relay
        self.store = store
        self.channel_name = channel_name
        self.channel_id = channel_id
        self.restart_delay = restart_delay

        self.lines: Deque[TranscriptLine] = deque(maxlen=max_lines)
        self.connection_status = ConnectionStatus.DISCONNECTED
        self.save_status = SaveStatus.IDLE
        self.filter_political = False
        self.auto_save = auto_save
        self.is_real_mode = False
        self.saved_count = 0
        self.store_count = 0
        self.is_loading_from_store = False

        # 界面订阅者（WebSocket 推送等）
        self.updates: EventChannel[Dict[str, Any]] = EventChannel("panel.updates")

        # start/stop 各加一，start 恢复执行时据此判断是否已被 stop
        self._session = 0
        self._pending_saves: Set[asyncio.Task] = set()
        self._saves_in_flight = 0
        self._unsubscribers: List[Unsubscribe] = [
            relay.on_transcript(self._handle_line),
            relay.on_status(self._handle_status),
            relay.on_error(self._handle_error),
            relay.on_connection_change(self._handle_connection_change),
        ]

    @property
    def max_lines(self) -> int:
        return self.lines.maxlen

    # 会话控制

    def set_channel(self, channel_name: Optional[str] = None, channel_id: Optional[str] = None) -> None:
        """切换目标频道，只能在未转写时调用"""
        if self.is_real_mode:
            raise ValidationException("转写进行中，不能切换频道")
        if channel_name:
            self.channel_name = channel_name
        if channel_id:
            self.channel_id = channel_id

    async def start(self, filter_political: Optional[bool] = None) -> bool:
        """
        连接中继并开始转写当前频道

        Returns:
            bool: 是否成功开始；失败时连接状态为 error
        """
        if not self.channel_id:
            raise ValidationException("未指定频道ID")
        if filter_political is not None:
            self.filter_political = filter_political

        self._session += 1
        session = self._session
        self.lines.clear()
        self._set_connection_status(ConnectionStatus.CONNECTING)

        try:
            await self.relay.connect()
            if session == self._session:
                await self.relay.start_transcription(self.channel_id, self.filter_political)
        except CampaignIntelException as e:
            if session != self._session:
                panel_logger.info(f"开始转写期间已被停止 ({self.channel_id})")
                return False
            panel_logger.error(f"开始实时转写失败 ({self.channel_id}): {e.message}")
            self.is_real_mode = False
            self._set_connection_status(ConnectionStatus.ERROR)
            return False

        if session != self._session:
            panel_logger.info(f"开始转写期间已被停止 ({self.channel_id})")
            return False

        if not self.relay.is_connected:
            # 发送开始命令时传输已失败
            self.is_real_mode = False
            self._set_connection_status(ConnectionStatus.ERROR)
            return False

        self.is_real_mode = True
        self._set_connection_status(ConnectionStatus.CONNECTED)
        panel_logger.info(f"实时转写已开始: {self.channel_name} ({self.channel_id})")
        return True

    async def stop(self) -> None:
        """停止转写并断开中继，也会中止尚未完成的 start()"""
        self._session += 1
        self.is_real_mode = False
        await self.relay.stop_transcription()
        await self.relay.disconnect()
        self._set_connection_status(ConnectionStatus.DISCONNECTED)
        panel_logger.info(f"实时转写已停止: {self.channel_name}")

    async def toggle_filter(self) -> bool:
        """切换政治过滤；正在转写时按新设置重启会话，过滤由服务端完成"""
        new_value = not self.filter_political
        if self.is_real_mode:
            await self.stop()
            await asyncio.sleep(self.restart_delay)
            await self.start(filter_political=new_value)
        else:
            self.filter_political = new_value
            self._publish_state()
        return self.filter_political

    def set_auto_save(self, enabled: bool) -> None:
        self.auto_save = enabled
        self._publish_state()

    # 查询

    def search(self, query: Optional[str]) -> List[TranscriptLine]:
        """在缓冲区内按三种语言做大小写不敏感的子串过滤，不修改缓冲区"""
        if not query:
            return list(self.lines)
        return [line for line in self.lines if line.matches(query)]

    async def load_from_store(self, limit: int = 50) -> int:
        """
        从存储回填缓冲区

        存储按新到旧返回，放入缓冲区时按旧到新排列，之后的实时行顺序追加。
        """
        self.is_loading_from_store = True
        self._publish_state()
        try:
            result = await self.store.query(limit=limit)
            if result.data:
                self.lines.clear()
                self.lines.extend(record.to_line() for record in reversed(result.data))
                self.store_count = len(result.data)
            else:
                if result.error:
                    panel_logger.warning(f"从存储加载转写失败: {result.error}")
                self.store_count = 0
        finally:
            self.is_loading_from_store = False
            self._publish_state()
        return self.store_count

    def export_text(self) -> str:
        """把缓冲区导出为纯文本，每行一段，段之间用 --- 分隔"""
        return "\n---\n".join(
            f"[{line.timestamp}]\nBengali: {line.bengali}\nHindi: {line.hindi}\nEnglish: {line.english}\n"
            for line in self.lines
        )

    def export_filename(self, today: Optional[date] = None) -> str:
        today = today or datetime.now(timezone.utc).date()
        return f"transcript-{self.channel_name}-{today.isoformat()}.txt"

    def snapshot(self, search: Optional[str] = None) -> PanelState:
        return PanelState(
            connection_status=self.connection_status.value,
            save_status=self.save_status.value,
            is_real_mode=self.is_real_mode,
            filter_political=self.filter_political,
            auto_save=self.auto_save,
            saved_count=self.saved_count,
            store_count=self.store_count,
            is_loading_from_store=self.is_loading_from_store,
            channel_name=self.channel_name,
            channel_id=self.channel_id,
            lines=self.search(search),
        )

    async def wait_for_pending_saves(self) -> None:
        """等待所有进行中的自动保存完成"""
        while self._pending_saves:
            await asyncio.gather(*list(self._pending_saves), return_exceptions=True)

    async def close(self) -> None:
        """解除中继订阅并等待保存任务"""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.wait_for_pending_saves()
        self.updates.clear()

    # 中继事件处理

    def _handle_line(self, line: TranscriptLine) -> None:
        self.lines.append(line)
        self.updates.publish({"type": "line", "line": line.model_dump(mode="json", by_alias=True)})

        if self.auto_save:
            task = asyncio.create_task(self._persist(line))
            self._pending_saves.add(task)
            task.add_done_callback(self._pending_saves.discard)

    async def _persist(self, line: TranscriptLine) -> None:
        self._saves_in_flight += 1
        self._set_save_status(SaveStatus.SAVING)
        try:
            result = await self.store.save(self.channel_name, self.channel_id, line)
        finally:
            self._saves_in_flight -= 1

        if result.success:
            self.saved_count += 1
            if self._saves_in_flight == 0:
                self.save_status = SaveStatus.IDLE
            self._publish_state()
        else:
            panel_logger.warning(f"自动保存失败: {result.error}")
            self._set_save_status(SaveStatus.ERROR)

    def _handle_status(self, status: TranscriptionStatus) -> None:
        self.updates.publish({"type": "status", "status": status.model_dump(mode="json", by_alias=True)})

    def _handle_error(self, error: RelayError) -> None:
        panel_logger.warning(f"中继错误 ({error.channel_id}): {error.error}")
        self._set_connection_status(ConnectionStatus.ERROR)
        self.updates.publish({"type": "error", "error": error.model_dump(mode="json", by_alias=True)})

    def _handle_connection_change(self, state: RelayConnectionState) -> None:
        if state == RelayConnectionState.ERROR:
            self.is_real_mode = False
            self._set_connection_status(ConnectionStatus.ERROR)
        elif state == RelayConnectionState.DISCONNECTED and self.is_real_mode:
            # 服务端主动关闭
            self.is_real_mode = False
            self._set_connection_status(ConnectionStatus.DISCONNECTED)

    def _set_connection_status(self, status: ConnectionStatus) -> None:
        if status == self.connection_status:
            return
        self.connection_status = status
        self._publish_state()

    def _set_save_status(self, status: SaveStatus) -> None:
        if status == self.save_status:
            return
        self.save_status = status
        self._publish_state()

    def _publish_state(self) -> None:
        state = self.snapshot().model_dump(mode="json", exclude={"lines"})
        self.updates.publish({"type": "state", "state": state})
