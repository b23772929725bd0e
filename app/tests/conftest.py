"""
测试配置和fixtures
"""

import asyncio
from typing import AsyncGenerator, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.database import Base, create_session_factory
from app.models.transcript import TvTranscript  # noqa: F401
from app.schemas.transcript import TranscriptLine
from app.services.keywords import PoliticalKeywords
from app.services.relay import TranscriptRelayClient
from app.services.relay_transport import RelayTransport
from app.services.sentiment.base import EngineResult, SentimentEngine, SentimentProvider
from app.services.tagger import TranscriptTagger
from app.services.transcript_panel import TranscriptPanel
from app.services.transcript_store import TranscriptStore


# 每个测试使用独立的内存数据库
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class StubSentimentEngine(SentimentEngine):
    """可控的情感引擎"""

    def __init__(self, sentiment: str = "positive", polarity: float = 0.6,
                 delay: float = 0.0, error: Optional[Exception] = None):
        super().__init__({})
        self.sentiment = sentiment
        self.polarity = polarity
        self.delay = delay
        self.error = error
        self.calls: List[str] = []

    def _get_provider_name(self) -> SentimentProvider:
        return SentimentProvider.KEYWORD

    async def analyze(self, text: str) -> EngineResult:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return EngineResult(polarity=self.polarity, sentiment=self.sentiment)


class FakeRelayTransport(RelayTransport):
    """内存中的中继传输，入站事件通过队列注入"""

    def __init__(self, connect_error: Optional[Exception] = None, connect_delay: float = 0.0,
                 send_error: Optional[Exception] = None):
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.send_error = send_error
        self.connect_calls = 0
        self.sent: List[tuple] = []
        self.closed = False
        self._open = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        self._open = True

    async def send(self, event: str, data: dict) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((event, data))

    async def messages(self):
        while True:
            item = await self._inbox.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    # 测试辅助
    def push(self, event: str, data) -> None:
        self._inbox.put_nowait((event, data))

    def end(self) -> None:
        """模拟服务端正常关闭"""
        self._inbox.put_nowait(None)

    def fail(self, error: Exception) -> None:
        """模拟连接异常中断"""
        self._inbox.put_nowait(error)

    def sent_events(self) -> List[str]:
        return [event for event, _ in self.sent]


class FakeTransportFactory:
    """记录每次连接创建的传输"""

    def __init__(self, **transport_kwargs):
        self.transport_kwargs = transport_kwargs
        self.created: List[FakeRelayTransport] = []

    def __call__(self) -> FakeRelayTransport:
        transport = FakeRelayTransport(**self.transport_kwargs)
        self.created.append(transport)
        return transport

    @property
    def current(self) -> FakeRelayTransport:
        return self.created[-1]

    @property
    def handshakes(self) -> int:
        return sum(t.connect_calls for t in self.created)


async def _wait_until(predicate, timeout: float = 1.0):
    """等待读取任务把事件分发完"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """内存数据库引擎"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def drop_transcripts_table(db_engine):
    """删除转写表以模拟存储不可用"""
    async def _drop():
        async with db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    return _drop


@pytest.fixture(scope="session")
def keywords() -> PoliticalKeywords:
    return PoliticalKeywords.load()


@pytest.fixture
def sentiment_engine() -> StubSentimentEngine:
    return StubSentimentEngine()


@pytest.fixture
def tagger(sentiment_engine, keywords) -> TranscriptTagger:
    return TranscriptTagger(sentiment_engine, keywords, timeout=0.2)


@pytest.fixture
def store(tagger, session_factory) -> TranscriptStore:
    return TranscriptStore(tagger, session_factory, default_limit=100, max_limit=1000)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
async def relay(transport_factory) -> AsyncGenerator[TranscriptRelayClient, None]:
    client = TranscriptRelayClient(transport_factory, connect_timeout=0.2)
    yield client
    await client.disconnect()


@pytest.fixture
async def panel(relay, store) -> AsyncGenerator[TranscriptPanel, None]:
    transcript_panel = TranscriptPanel(
        relay,
        store,
        channel_name="Kolkata News",
        channel_id="kolkata-news",
        max_lines=50,
        restart_delay=0.01,
        auto_save=True
    )
    yield transcript_panel
    await transcript_panel.close()


@pytest.fixture
async def client(tagger, store, relay, panel) -> AsyncGenerator[AsyncClient, None]:
    """提供测试客户端，服务直接挂到 app.state，不经过 lifespan"""
    from app.core.websocket import ConnectionManager
    from app.main import app

    app.state.tagger = tagger
    app.state.transcript_store = store
    app.state.relay = relay
    app.state.transcript_panel = panel
    app.state.connection_manager = ConnectionManager(heartbeat_interval=0)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    for name in ("tagger", "transcript_store", "relay", "transcript_panel", "connection_manager"):
        delattr(app.state, name)


# 测试数据工厂
class TestDataFactory:
    """测试数据工厂"""

    @staticmethod
    def line(**kwargs) -> TranscriptLine:
        """转写行"""
        default_data = {
            "timestamp": "10:15:00 AM",
            "bengali": "",
            "hindi": "",
            "english": "The weather in Kolkata is pleasant today",
        }
        default_data.update(kwargs)
        return TranscriptLine(**default_data)

    @staticmethod
    def line_payload(**kwargs) -> dict:
        """中继线上格式的转写行"""
        default_data = {
            "id": "line-1",
            "timestamp": "10:15:00 AM",
            "bengali": "",
            "hindi": "",
            "english": "Traffic update from Howrah bridge",
        }
        default_data.update(kwargs)
        return default_data


@pytest.fixture
def test_data_factory():
    """测试数据工厂fixture"""
    return TestDataFactory
