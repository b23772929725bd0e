"""
OpenAI情感分析引擎
"""

from typing import Any, Dict

import openai
from openai import AsyncOpenAI

from app.core.exceptions import SentimentEngineException
from .base import (
    EngineResult, SentimentEngine, SentimentProvider,
    SENTIMENT_SYSTEM_PROMPT, parse_engine_payload
)


class OpenAISentimentEngine(SentimentEngine):
    """通过 chat completions 的 JSON 模式获取情感结果"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.client = AsyncOpenAI(
            api_key=config.get("api_key"),
            base_url=config.get("base_url"),  # 支持自定义endpoint
            timeout=config.get("timeout", 30),
            max_retries=0,
        )
        self.model = config.get("model", "gpt-4o-mini")

    def _get_provider_name(self) -> SentimentProvider:
        return SentimentProvider.OPENAI

    async def analyze(self, text: str) -> EngineResult:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SENTIMENT_SYSTEM_PROMPT},
                    {"role": "user", "content": text},
                ],
                temperature=0,
                max_tokens=50,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            raise SentimentEngineException(f"OpenAI sentiment error: {e}")

        if not response.choices:
            raise SentimentEngineException("OpenAI sentiment error: empty response")
        return parse_engine_payload(response.choices[0].message.content)

    async def close(self):
        await self.client.close()
