"""
情感分析引擎模块初始化
"""

from typing import Optional

from app.core.logging import sentiment_logger
from app.services.keywords import PoliticalKeywords
from .base import (
    EngineResult, SentimentEngine, SentimentEngineFactory, SentimentProvider,
    parse_engine_payload
)
from .keyword_engine import KeywordSentimentEngine
from .openai_engine import OpenAISentimentEngine
from .anthropic_engine import AnthropicSentimentEngine


def register_sentiment_engines():
    """注册内置引擎"""
    SentimentEngineFactory.register(SentimentProvider.KEYWORD, KeywordSentimentEngine)
    SentimentEngineFactory.register(SentimentProvider.OPENAI, OpenAISentimentEngine)
    SentimentEngineFactory.register(SentimentProvider.ANTHROPIC, AnthropicSentimentEngine)


def create_sentiment_engine(settings, keywords: Optional[PoliticalKeywords] = None) -> SentimentEngine:
    """
    根据配置创建情感分析引擎

    所选提供商未配置API密钥时退回到词表引擎。
    """
    register_sentiment_engines()

    try:
        provider = SentimentProvider(settings.sentiment_provider.lower())
    except ValueError:
        sentiment_logger.warning(f"未知的情感分析引擎 {settings.sentiment_provider!r}，使用词表引擎")
        provider = SentimentProvider.KEYWORD

    if provider == SentimentProvider.OPENAI and not settings.openai_api_key:
        sentiment_logger.warning("未配置 OPENAI_API_KEY，使用词表引擎")
        provider = SentimentProvider.KEYWORD
    elif provider == SentimentProvider.ANTHROPIC and not settings.anthropic_api_key:
        sentiment_logger.warning("未配置 ANTHROPIC_API_KEY，使用词表引擎")
        provider = SentimentProvider.KEYWORD

    if provider == SentimentProvider.OPENAI:
        config = {
            "api_key": settings.openai_api_key,
            "base_url": settings.openai_base_url,
            "model": settings.openai_model,
            "timeout": settings.sentiment_timeout,
        }
    elif provider == SentimentProvider.ANTHROPIC:
        config = {
            "api_key": settings.anthropic_api_key,
            "base_url": settings.anthropic_base_url,
            "model": settings.anthropic_model,
            "timeout": settings.sentiment_timeout,
        }
    else:
        config = {
            "keywords": keywords,
            "keywords_path": settings.political_keywords_path,
        }

    engine = SentimentEngineFactory.create(provider, config)
    sentiment_logger.info(f"情感分析引擎: {provider.value}")
    return engine


__all__ = [
    'EngineResult',
    'SentimentEngine',
    'SentimentEngineFactory',
    'SentimentProvider',
    'KeywordSentimentEngine',
    'OpenAISentimentEngine',
    'AnthropicSentimentEngine',
    'parse_engine_payload',
    'register_sentiment_engines',
    'create_sentiment_engine',
]
