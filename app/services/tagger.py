"""
转写情感与政党提及标注

- 提及检测：大小写不敏感的子串匹配，BJP 与 TMC 相互独立
- 情感分析：委托给可插拔引擎，任何失败都退回 neutral / 0.5，从不抛出

标注器本身无状态，可并发调用。
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Tuple

from app.core.logging import sentiment_logger
from app.schemas.transcript import SentimentLabel
from app.services.keywords import PoliticalKeywords, contains_any, normalize_text
from app.services.sentiment.base import SentimentEngine

NEUTRAL_SCORE = 0.5


@dataclass(frozen=True)
class SentimentScore:
    """情感标签及 [0, 1] 区间的分数"""
    label: SentimentLabel
    score: float


NEUTRAL = SentimentScore(SentimentLabel.NEUTRAL, NEUTRAL_SCORE)


@dataclass(frozen=True)
class TagResult:
    """单段文本的标注结果"""
    sentiment: SentimentLabel
    score: float
    bjp_mention: bool
    tmc_mention: bool


def polarity_to_score(value: float) -> float:
    """把 [-1, 1] 的倾向值换算到 [0, 1]，越界先截断"""
    clamped = max(-1.0, min(1.0, float(value)))
    return (clamped + 1.0) / 2.0


class TranscriptTagger:
    """转写标注器"""

    def __init__(
        self,
        engine: Optional[SentimentEngine],
        keywords: Optional[PoliticalKeywords] = None,
        timeout: float = 5.0,
    ):
        self.engine = engine
        self.keywords = keywords or PoliticalKeywords.load()
        self.timeout = timeout

    def detect_mentions(self, text: str) -> Tuple[bool, bool]:
        """返回 (bjp_mention, tmc_mention)"""
        if not text:
            return False, False
        normalized = normalize_text(text)
        return (
            contains_any(normalized, self.keywords.bjp),
            contains_any(normalized, self.keywords.tmc),
        )

    async def analyze_sentiment(self, text: str) -> SentimentScore:
        """调用引擎分析情感，失败时返回中性"""
        if self.engine is None or not text or not text.strip():
            return NEUTRAL

        try:
            result = await asyncio.wait_for(self.engine.analyze(text), timeout=self.timeout)
        except asyncio.TimeoutError:
            sentiment_logger.warning(f"情感分析超时({self.timeout}s)，按中性处理")
            return NEUTRAL
        except Exception as e:
            sentiment_logger.warning(f"情感分析失败，按中性处理: {e!r}")
            return NEUTRAL

        try:
            label = SentimentLabel(str(result.sentiment).lower())
            score = polarity_to_score(result.polarity)
        except (ValueError, TypeError, AttributeError) as e:
            sentiment_logger.warning(f"情感引擎返回无效结果 {result!r}: {e!r}")
            return NEUTRAL

        return SentimentScore(label, score)

    async def tag(self, text: str) -> TagResult:
        """完整标注，始终返回结果"""
        bjp, tmc = self.detect_mentions(text)
        sentiment = await self.analyze_sentiment(text)
        return TagResult(
            sentiment=sentiment.label,
            score=sentiment.score,
            bjp_mention=bjp,
            tmc_mention=tmc,
        )

    async def close(self):
        if self.engine is not None:
            await self.engine.close()
