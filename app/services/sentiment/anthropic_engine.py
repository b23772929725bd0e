"""
Anthropic Claude情感分析引擎
"""

from typing import Any, Dict

import httpx

from app.core.exceptions import SentimentEngineException
from .base import (
    EngineResult, SentimentEngine, SentimentProvider,
    SENTIMENT_SYSTEM_PROMPT, parse_engine_payload
)


class AnthropicSentimentEngine(SentimentEngine):
    """通过 Messages API 获取情感结果"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.model = config.get("model", "claude-3-haiku-20240307")
        self.client = httpx.AsyncClient(
            base_url=config.get("base_url", "https://api.anthropic.com"),
            timeout=config.get("timeout", 30),
            headers={
                "x-api-key": config.get("api_key") or "",
                "anthropic-version": "2023-06-01",
                "content-type": "application/json"
            },
            transport=config.get("transport"),
        )

    def _get_provider_name(self) -> SentimentProvider:
        return SentimentProvider.ANTHROPIC

    async def analyze(self, text: str) -> EngineResult:
        request_data = {
            "model": self.model,
            "system": SENTIMENT_SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": text}],
            "max_tokens": 50,
            "temperature": 0,
        }

        try:
            response = await self.client.post("/v1/messages", json=request_data)
        except httpx.HTTPError as e:
            raise SentimentEngineException(f"Anthropic sentiment error: {e!r}")

        if response.status_code != 200:
            raise SentimentEngineException(
                f"Anthropic sentiment error: {response.status_code} - {response.text}"
            )

        data = response.json()
        content = data.get("content") or []
        if not content:
            raise SentimentEngineException("Anthropic sentiment error: empty response")
        return parse_engine_payload(content[0].get("text", ""))

    async def close(self):
        await self.client.aclose()
