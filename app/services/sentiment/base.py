"""
情感分析引擎抽象基类
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from app.core.exceptions import SentimentEngineException


class SentimentProvider(Enum):
    """情感分析引擎提供商"""
    KEYWORD = "keyword"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class EngineResult:
    """引擎原始输出：polarity 为 [-1, 1] 区间的倾向值，sentiment 为标签"""
    polarity: float
    sentiment: str


SENTIMENT_SYSTEM_PROMPT = (
    "You are a sentiment classifier for Indian political TV news transcripts. "
    "The text may mix Bengali, Hindi and English. "
    "Reply with a single JSON object and nothing else: "
    '{"sentiment": "positive" | "negative" | "neutral", "polarity": <number between -1 and 1>}'
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_engine_payload(raw: str) -> EngineResult:
    """
    解析大模型返回的JSON文本

    Raises:
        SentimentEngineException: 返回内容不是合法的情感结果
    """
    match = _JSON_OBJECT.search(raw or "")
    if not match:
        raise SentimentEngineException(f"Malformed sentiment response: {raw!r}")
    try:
        data = json.loads(match.group(0))
        sentiment = str(data["sentiment"]).strip().lower()
        polarity = float(data.get("polarity", 0.0))
    except (ValueError, KeyError, TypeError) as e:
        raise SentimentEngineException(f"Malformed sentiment response: {e!r}")
    return EngineResult(polarity=polarity, sentiment=sentiment)


class SentimentEngine(ABC):
    """情感分析引擎"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.provider = self._get_provider_name()

    @abstractmethod
    def _get_provider_name(self) -> SentimentProvider:
        """获取提供商名称"""
        pass

    @abstractmethod
    async def analyze(self, text: str) -> EngineResult:
        """
        分析一段文本的情感倾向

        Args:
            text: 待分析文本，可能混合多种语言

        Returns:
            EngineResult: 引擎原始结果，由调用方负责校验和兜底
        """
        pass

    async def close(self):
        """释放底层连接"""
        pass


class SentimentEngineFactory:
    """情感分析引擎工厂"""

    _engines = {}

    @classmethod
    def register(cls, provider: SentimentProvider, engine_class):
        cls._engines[provider] = engine_class

    @classmethod
    def create(cls, provider: SentimentProvider, config: Dict[str, Any]) -> SentimentEngine:
        if provider not in cls._engines:
            raise ValueError(f"Unknown sentiment provider: {provider}")
        return cls._engines[provider](config)
