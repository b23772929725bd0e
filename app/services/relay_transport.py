"""
转写中继传输层

消息格式为 JSON 信封: {"event": <事件名>, "data": {...}}
"""

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import websockets

from app.core.logging import relay_logger

Envelope = Tuple[str, Dict[str, Any]]


def encode_envelope(event: str, data: Dict[str, Any]) -> str:
    return json.dumps({"event": event, "data": data}, ensure_ascii=False)


def decode_envelope(raw) -> Envelope:
    """
    解析一帧中继消息

    Raises:
        ValueError: 不是合法的信封
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    payload = json.loads(raw)
    if not isinstance(payload, dict) or not isinstance(payload.get("event"), str):
        raise ValueError("envelope must be an object with a string 'event'")
    data = payload.get("data")
    if data is None:
        data = {}
    return payload["event"], data


class RelayTransport(ABC):
    """中继连接的传输抽象，便于替换和测试"""

    @abstractmethod
    async def connect(self) -> None:
        """建立连接，返回即表示连接可用"""
        pass

    @abstractmethod
    async def send(self, event: str, data: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def messages(self) -> AsyncIterator[Envelope]:
        """按到达顺序产出入站事件；正常关闭时结束迭代，异常断开时抛出"""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass


class WebSocketRelayTransport(RelayTransport):
    """基于 websockets 的中继传输"""

    def __init__(self, url: str, open_timeout: Optional[float] = 10.0, max_size: int = 2 * 1024 * 1024):
        self.url = url
        self.open_timeout = open_timeout
        self.max_size = max_size
        self._ws = None

    async def connect(self) -> None:
        self._ws = await websockets.connect(
            self.url,
            open_timeout=self.open_timeout,
            max_size=self.max_size,
        )
        relay_logger.info(f"[Relay] Connected to {self.url}")

    async def send(self, event: str, data: Dict[str, Any]) -> None:
        if self._ws is None:
            raise RuntimeError("WebSocket not connected. Call connect() first.")
        await self._ws.send(encode_envelope(event, data))

    async def messages(self) -> AsyncIterator[Envelope]:
        if self._ws is None:
            raise RuntimeError("WebSocket not connected")

        async for raw in self._ws:
            try:
                yield decode_envelope(raw)
            except ValueError as e:
                relay_logger.warning(f"[Relay] 丢弃无法解析的消息: {e}")

    async def close(self) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.close()
            relay_logger.info("[Relay] Connection closed")
        finally:
            self._ws = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None
