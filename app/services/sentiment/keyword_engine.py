"""
基于词表的离线情感分析引擎
"""

from typing import Any, Dict

from app.services.keywords import PoliticalKeywords, count_matches, normalize_text
from .base import EngineResult, SentimentEngine, SentimentProvider

# 倾向值超过该阈值才判为正/负面
POLARITY_THRESHOLD = 0.2


class KeywordSentimentEngine(SentimentEngine):
    """统计正负面词出现次数，无需网络"""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.keywords = config.get("keywords") or PoliticalKeywords.load(config.get("keywords_path"))

    def _get_provider_name(self) -> SentimentProvider:
        return SentimentProvider.KEYWORD

    async def analyze(self, text: str) -> EngineResult:
        normalized = normalize_text(text or "")
        positive = count_matches(normalized, self.keywords.positive)
        negative = count_matches(normalized, self.keywords.negative)

        total = positive + negative
        if total == 0:
            return EngineResult(polarity=0.0, sentiment="neutral")

        polarity = (positive - negative) / total
        if polarity > POLARITY_THRESHOLD:
            sentiment = "positive"
        elif polarity < -POLARITY_THRESHOLD:
            sentiment = "negative"
        else:
            sentiment = "neutral"
        return EngineResult(polarity=polarity, sentiment=sentiment)
