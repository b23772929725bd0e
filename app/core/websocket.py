"""
WebSocket连接管理器

把实时面板的更新推送给浏览器端订阅者。每个连接可以设置自己的搜索词，
只接收匹配的转写行；状态类消息总是推送。
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import WebSocket

from app.core.logging import get_logger
from app.services.keywords import normalize_text

ws_logger = get_logger("websocket")

LANGUAGE_FIELDS = ("bengali", "hindi", "english")


def line_matches(line: Dict[str, Any], query: Optional[str]) -> bool:
    if not query:
        return True
    needle = normalize_text(query)
    return any(needle in normalize_text(str(line.get(field) or "")) for field in LANGUAGE_FIELDS)


class ConnectionManager:
    """WebSocket连接管理器"""

    def __init__(self, heartbeat_interval: float = 30):
        # 活跃连接：connection_id -> WebSocket
        self.active_connections: Dict[str, WebSocket] = {}

        # 连接元数据：connection_id -> metadata
        self.connection_metadata: Dict[str, Dict[str, Any]] = {}

        # 消息处理器
        self.message_handlers: Dict[str, Callable] = {}

        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_task: Optional[asyncio.Task] = None

        # 按入队顺序发送的广播队列
        self._outbox: Optional[asyncio.Queue] = None
        self._sender_task: Optional[asyncio.Task] = None

    def register_handler(self, message_type: str, handler: Callable):
        """注册消息处理器"""
        self.message_handlers[message_type] = handler

    async def connect(self, websocket: WebSocket) -> str:
        """接受WebSocket连接"""
        await websocket.accept()

        connection_id = str(uuid.uuid4())
        self.active_connections[connection_id] = websocket
        self.connection_metadata[connection_id] = {
            'search': None,
            'connected_at': datetime.now(),
            'last_ping': datetime.now()
        }

        if not self.heartbeat_task and self.heartbeat_interval:
            self.heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        ws_logger.info(f"WebSocket连接已建立: {connection_id}")

        await self.send_personal_message(connection_id, {
            'type': 'connection_established',
            'connection_id': connection_id,
            'timestamp': datetime.now().isoformat()
        })

        return connection_id

    async def disconnect(self, connection_id: str):
        """断开WebSocket连接"""
        if connection_id in self.active_connections:
            del self.active_connections[connection_id]
            self.connection_metadata.pop(connection_id, None)
            ws_logger.info(f"WebSocket连接已断开: {connection_id}")

        # 没有活跃连接时停止心跳
        if not self.active_connections and self.heartbeat_task:
            self.heartbeat_task.cancel()
            self.heartbeat_task = None

    def set_search(self, connection_id: str, query: Optional[str]):
        """设置连接的搜索词，空字符串表示不过滤"""
        if connection_id in self.connection_metadata:
            self.connection_metadata[connection_id]['search'] = query or None

    def get_search(self, connection_id: str) -> Optional[str]:
        return self.connection_metadata.get(connection_id, {}).get('search')

    async def send_personal_message(self, connection_id: str, message: Dict[str, Any]) -> bool:
        """发送个人消息"""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_text(json.dumps(message, default=str, ensure_ascii=False))
            return True
        except Exception as e:
            ws_logger.warning(f"发送个人消息失败 {connection_id}: {e!r}")
            await self.disconnect(connection_id)
            return False

    async def broadcast_to_all(self, message: Dict[str, Any]) -> int:
        """向所有连接广播；转写行只发给搜索词匹配的连接"""
        sent_count = 0
        is_line = message.get('type') == 'line'

        for connection_id in list(self.active_connections.keys()):
            if is_line and not line_matches(message.get('line') or {}, self.get_search(connection_id)):
                continue
            if await self.send_personal_message(connection_id, message):
                sent_count += 1

        return sent_count

    def broadcast_fire_and_forget(self, message: Dict[str, Any]) -> None:
        """非阻塞广播，可在同步回调中调用，消息按调用顺序送达"""
        if not self.active_connections:
            return
        if self._outbox is None:
            self._outbox = asyncio.Queue()
        if self._sender_task is None or self._sender_task.done():
            self._sender_task = asyncio.create_task(self._sender_loop())
        self._outbox.put_nowait(message)

    async def handle_message(self, connection_id: str, message: str):
        """处理接收到的消息"""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            ws_logger.warning(f"无效的JSON消息: {message[:200]}")
            await self.send_personal_message(connection_id, {
                'type': 'error',
                'message': 'Invalid JSON format'
            })
            return

        if not isinstance(data, dict):
            await self.send_personal_message(connection_id, {
                'type': 'error',
                'message': 'Message must be a JSON object'
            })
            return

        message_type = data.get('type')
        if connection_id in self.connection_metadata:
            self.connection_metadata[connection_id]['last_ping'] = datetime.now()

        if message_type == 'ping':
            await self.send_personal_message(connection_id, {
                'type': 'pong',
                'timestamp': datetime.now().isoformat()
            })
            return

        handler = self.message_handlers.get(message_type)
        if handler is None:
            ws_logger.warning(f"未知消息类型: {message_type}")
            await self.send_personal_message(connection_id, {
                'type': 'error',
                'message': f'Unknown message type: {message_type}'
            })
            return

        try:
            await handler(connection_id, data)
        except Exception as e:
            ws_logger.opt(exception=e).error(f"处理消息时出错: {message_type}")
            await self.send_personal_message(connection_id, {
                'type': 'error',
                'message': 'Internal server error'
            })

    async def _sender_loop(self):
        while True:
            message = await self._outbox.get()
            try:
                await self.broadcast_to_all(message)
            except Exception as e:
                ws_logger.error(f"广播消息失败: {e!r}")
            finally:
                self._outbox.task_done()

    async def flush(self):
        """等待队列中的广播全部发出"""
        if self._outbox is not None and self._sender_task is not None and not self._sender_task.done():
            await self._outbox.join()

    async def _heartbeat_loop(self):
        """心跳检测循环"""
        while True:
            await asyncio.sleep(self.heartbeat_interval)

            current_time = datetime.now()
            timeout_connections = [
                connection_id
                for connection_id, metadata in self.connection_metadata.items()
                if (current_time - metadata['last_ping']).total_seconds() > self.heartbeat_interval * 2
            ]

            for connection_id in timeout_connections:
                ws_logger.info(f"连接超时，断开连接: {connection_id}")
                websocket = self.active_connections.get(connection_id)
                await self.disconnect(connection_id)
                if websocket is not None:
                    try:
                        await websocket.close(code=1001)
                    except Exception as e:
                        ws_logger.debug(f"关闭超时连接失败 {connection_id}: {e!r}")

            for connection_id in list(self.active_connections.keys()):
                await self.send_personal_message(connection_id, {
                    'type': 'heartbeat',
                    'timestamp': current_time.isoformat()
                })

    async def shutdown(self):
        """停止后台任务并关闭全部连接"""
        for task in (self._sender_task, self.heartbeat_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._sender_task = None
        self.heartbeat_task = None

        for connection_id, websocket in list(self.active_connections.items()):
            try:
                await websocket.close(code=1001)
            except Exception as e:
                ws_logger.debug(f"关闭连接失败 {connection_id}: {e!r}")
            await self.disconnect(connection_id)

    def get_connection_count(self) -> int:
        """获取活跃连接数"""
        return len(self.active_connections)
