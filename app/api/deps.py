"""
FastAPI依赖项

服务实例在应用生命周期中创建并挂在 app.state 上，这里按请求取出。
"""

from starlette.requests import HTTPConnection

from app.core.exceptions import ConfigurationException
from app.core.websocket import ConnectionManager
from app.services.tagger import TranscriptTagger
from app.services.transcript_panel import TranscriptPanel
from app.services.transcript_store import TranscriptStore


def _from_state(connection: HTTPConnection, name: str):
    service = getattr(connection.app.state, name, None)
    if service is None:
        raise ConfigurationException(f"服务未初始化: {name}")
    return service


def get_tagger(connection: HTTPConnection) -> TranscriptTagger:
    return _from_state(connection, "tagger")


def get_transcript_store(connection: HTTPConnection) -> TranscriptStore:
    return _from_state(connection, "transcript_store")


def get_transcript_panel(connection: HTTPConnection) -> TranscriptPanel:
    return _from_state(connection, "transcript_panel")


def get_connection_manager(connection: HTTPConnection) -> ConnectionManager:
    return _from_state(connection, "connection_manager")
