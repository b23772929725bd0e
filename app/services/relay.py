"""
转写中继客户端

单连接、单频道会话的状态机：

    disconnected -> connecting -> connected
    任意状态在传输失败时进入 error，显式断开回到 disconnected

入站事件在读取任务中按到达顺序同步扇出给所有订阅者，不缓存、不重放，也不自动重连。
"""

import asyncio
import uuid
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from app.core.events import EventChannel, Unsubscribe
from app.core.exceptions import RelayConnectionException, RelayNotConnectedException
from app.core.logging import relay_logger
from app.schemas.transcript import RelayError, TranscriptionStatus, TranscriptLine
from app.services.relay_transport import RelayTransport, WebSocketRelayTransport


class RelayConnectionState(str, Enum):
    """中继连接状态"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class TranscriptRelayClient:
    """转写中继客户端，由组合根显式创建并按引用传递"""

    def __init__(
        self,
        transport_factory: Callable[[], RelayTransport],
        connect_timeout: float = 10.0,
    ):
        self._transport_factory = transport_factory
        self.connect_timeout = connect_timeout

        self._transport: Optional[RelayTransport] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._state = RelayConnectionState.DISCONNECTED
        self._active_channel: Optional[str] = None
        self._connect_lock = asyncio.Lock()
        # 每次拆除连接加一，握手完成时据此判断期间是否被断开
        self._generation = 0

        self.transcripts: EventChannel[TranscriptLine] = EventChannel("relay.transcript")
        self.statuses: EventChannel[TranscriptionStatus] = EventChannel("relay.status")
        self.errors: EventChannel[RelayError] = EventChannel("relay.error")
        self.connection_changes: EventChannel[RelayConnectionState] = EventChannel("relay.connection")

    @classmethod
    def from_settings(cls, settings) -> "TranscriptRelayClient":
        def factory() -> RelayTransport:
            return WebSocketRelayTransport(
                settings.transcription_server_url,
                open_timeout=None,
                max_size=settings.relay_max_message_size,
            )
        return cls(factory, connect_timeout=settings.relay_connect_timeout)

    @property
    def state(self) -> RelayConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == RelayConnectionState.CONNECTED and self._transport is not None

    @property
    def current_channel(self) -> Optional[str]:
        return self._active_channel

    # 订阅

    def on_transcript(self, handler: Callable[[TranscriptLine], Any]) -> Unsubscribe:
        return self.transcripts.subscribe(handler)

    def on_status(self, handler: Callable[[TranscriptionStatus], Any]) -> Unsubscribe:
        return self.statuses.subscribe(handler)

    def on_error(self, handler: Callable[[RelayError], Any]) -> Unsubscribe:
        return self.errors.subscribe(handler)

    def on_connection_change(self, handler: Callable[[RelayConnectionState], Any]) -> Unsubscribe:
        return self.connection_changes.subscribe(handler)

    # 连接管理

    async def connect(self) -> None:
        """
        建立连接

        已连接时直接返回，并发调用只进行一次握手。

        Raises:
            RelayConnectionException: 传输失败、超时，或握手期间被 disconnect() 中止
        """
        if self.is_connected:
            return

        async with self._connect_lock:
            if self.is_connected:
                return

            generation = self._generation
            self._set_state(RelayConnectionState.CONNECTING)
            transport = self._transport_factory()
            try:
                await asyncio.wait_for(transport.connect(), timeout=self.connect_timeout)
            except asyncio.TimeoutError:
                await self._close_quietly(transport)
                if generation == self._generation:
                    self._set_state(RelayConnectionState.ERROR)
                relay_logger.error(f"连接转写中继超时({self.connect_timeout}s)")
                raise RelayConnectionException(f"连接转写中继超时({self.connect_timeout}s)")
            except asyncio.CancelledError:
                await self._close_quietly(transport)
                self._set_state(RelayConnectionState.DISCONNECTED)
                raise
            except Exception as e:
                await self._close_quietly(transport)
                if generation == self._generation:
                    self._set_state(RelayConnectionState.ERROR)
                relay_logger.error(f"连接转写中继失败: {e!r}")
                raise RelayConnectionException(f"无法连接转写中继: {e}") from e

            if generation != self._generation:
                # 握手期间调用了 disconnect()，丢弃这条连接
                await self._close_quietly(transport)
                relay_logger.info("握手期间连接已被断开，放弃本次连接")
                raise RelayConnectionException("连接在握手完成前已被断开")

            self._transport = transport
            self._set_state(RelayConnectionState.CONNECTED)
            self._reader_task = asyncio.create_task(self._read_loop(transport), name="relay-reader")
            relay_logger.info("转写中继已连接")

    async def disconnect(self) -> None:
        """无条件断开，订阅保留；正在进行的握手完成后会被丢弃"""
        await self._teardown(RelayConnectionState.DISCONNECTED)
        relay_logger.info("转写中继已断开")

    async def close(self) -> None:
        """断开并移除全部订阅"""
        await self.disconnect()
        for channel in (self.transcripts, self.statuses, self.errors, self.connection_changes):
            channel.clear()

    # 控制命令

    async def start_transcription(self, channel_id: str, filter_political: bool = False) -> None:
        """
        请求服务端开始转写指定频道

        Raises:
            RelayNotConnectedException: 尚未连接，不会排队
        """
        if not self.is_connected:
            relay_logger.error(f"未连接时请求开始转写: {channel_id}")
            raise RelayNotConnectedException()

        self._active_channel = channel_id
        sent = await self._send("start_transcription", {
            "channelId": channel_id,
            "filterPolitical": bool(filter_political),
        })
        if sent:
            relay_logger.info(f"开始转写频道 {channel_id} (filterPolitical={filter_political})")

    async def stop_transcription(self) -> None:
        """停止当前频道，没有活动频道时什么也不做"""
        channel_id = self._active_channel
        if channel_id is None:
            return

        self._active_channel = None
        if not self.is_connected:
            relay_logger.warning(f"连接已断开，仅清除活动频道 {channel_id}")
            return

        if await self._send("stop_transcription", {"channelId": channel_id}):
            relay_logger.info(f"停止转写频道 {channel_id}")

    # 内部实现

    def _set_state(self, state: RelayConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        self.connection_changes.publish(state)

    async def _send(self, event: str, data: Dict[str, Any]) -> bool:
        transport = self._transport
        try:
            await transport.send(event, data)
            return True
        except Exception as e:
            relay_logger.error(f"发送 {event} 失败: {e!r}")
            channel_id = data.get("channelId") or "unknown"
            await self._teardown(RelayConnectionState.ERROR)
            self.errors.publish(RelayError(channel_id=channel_id, error=str(e) or type(e).__name__))
            return False

    async def _read_loop(self, transport: RelayTransport) -> None:
        try:
            async for event, data in transport.messages():
                self._dispatch(event, data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            relay_logger.error(f"中继连接异常中断: {e!r}")
            if self._transport is transport:
                channel_id = self._active_channel or "unknown"
                await self._teardown(RelayConnectionState.ERROR)
                self.errors.publish(RelayError(channel_id=channel_id, error=str(e) or type(e).__name__))
            return

        if self._transport is transport:
            relay_logger.info("服务端关闭了中继连接")
            await self._teardown(RelayConnectionState.DISCONNECTED)

    def _dispatch(self, event: str, data: Any) -> None:
        if event == "transcript":
            try:
                line = TranscriptLine.model_validate(data)
            except ValidationError as e:
                relay_logger.warning(f"丢弃无效的转写行: {e}")
                return
            if not line.id:
                line = line.model_copy(update={"id": uuid.uuid4().hex})
            self.transcripts.publish(line)

        elif event == "transcription_status":
            try:
                status = TranscriptionStatus.model_validate(data)
            except ValidationError as e:
                relay_logger.warning(f"丢弃无效的状态消息: {e}")
                return
            relay_logger.debug(f"频道 {status.channel_id} 状态: {status.status} {status.message}")
            self.statuses.publish(status)

        elif event == "transcription_error":
            try:
                error = RelayError.model_validate(data)
            except ValidationError as e:
                relay_logger.warning(f"丢弃无效的错误消息: {e}")
                return
            relay_logger.warning(f"频道 {error.channel_id} 转写错误: {error.error}")
            self.errors.publish(error)

        elif event == "error":
            message = data.get("message") if isinstance(data, dict) else data
            error = RelayError(channel_id="unknown", error=str(message or "unknown error"))
            relay_logger.warning(f"中继服务错误: {error.error}")
            self.errors.publish(error)

        else:
            relay_logger.debug(f"忽略未知事件: {event}")

    async def _teardown(self, final_state: RelayConnectionState) -> None:
        self._generation += 1
        transport, self._transport = self._transport, None
        task, self._reader_task = self._reader_task, None
        self._active_channel = None

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if transport is not None:
            await self._close_quietly(transport)
        self._set_state(final_state)

    async def _close_quietly(self, transport: RelayTransport) -> None:
        try:
            await transport.close()
        except Exception as e:
            relay_logger.debug(f"关闭中继传输时出错: {e!r}")
