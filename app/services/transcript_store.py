"""
转写存储服务

负责标注并持久化转写行，以及按频道/时间范围回读和统计。
写操作失败时返回结果对象而不是抛出异常，由调用方决定如何处理。
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.logging import store_logger
from app.db.database import AsyncSessionLocal
from app.models.transcript import TvTranscript
from app.schemas.transcript import (
    BatchSaveResult, QueryResult, SaveResult, TranscriptLine,
    TranscriptRecord, TranscriptStats
)
from app.services.tagger import TranscriptTagger


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间统一转换为不带时区的UTC，与 created_at 存储格式一致"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _describe(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class TranscriptStore:
    """转写存储（只追加）"""

    def __init__(
        self,
        tagger: TranscriptTagger,
        session_factory: async_sessionmaker = None,
        default_limit: int = 100,
        max_limit: int = 1000,
    ):
        self.tagger = tagger
        self.session_factory = session_factory or AsyncSessionLocal
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self.default_limit
        return max(1, min(int(limit), self.max_limit))

    async def _build_record(
        self,
        channel_name: str,
        channel_id: Optional[str],
        line: TranscriptLine,
    ) -> TvTranscript:
        """标注一行并构造待插入记录；来源已有的情感标签直接沿用"""
        text = line.combined_text
        bjp, tmc = self.tagger.detect_mentions(text)

        if line.sentiment is not None:
            sentiment, score = line.sentiment, None
        else:
            result = await self.tagger.analyze_sentiment(text)
            sentiment, score = result.label, result.score

        return TvTranscript(
            channel_name=channel_name,
            channel_id=channel_id,
            transcript_time=line.timestamp or "",
            bengali_text=line.bengali,
            hindi_text=line.hindi,
            english_text=line.english,
            sentiment=sentiment.value,
            sentiment_score=score,
            bjp_mention=bool(line.bjp_mention) or bjp,
            tmc_mention=bool(line.tmc_mention) or tmc,
        )

    async def save(
        self,
        channel_name: str,
        channel_id: Optional[str],
        line: TranscriptLine,
    ) -> SaveResult:
        """
        标注并保存单条转写

        Returns:
            SaveResult: 失败时 success=False 并附带错误信息，不重试
        """
        if not channel_name:
            return SaveResult(success=False, error="channel_name is required")

        try:
            record = await self._build_record(channel_name, channel_id, line)
            async with self.session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            store_logger.error(f"保存转写失败 ({channel_name}): {e!r}")
            return SaveResult(success=False, error=_describe(e))
        except Exception as e:
            store_logger.opt(exception=e).error(f"保存转写时发生未知错误 ({channel_name})")
            return SaveResult(success=False, error=_describe(e))

        store_logger.debug(f"已保存转写 {record.id} ({channel_name})")
        return SaveResult(success=True)

    async def save_batch(
        self,
        channel_name: str,
        channel_id: Optional[str],
        lines: List[TranscriptLine],
    ) -> BatchSaveResult:
        """
        并发标注后在一个事务中批量插入

        全部成功或全部失败，失败时 count 为 0。
        """
        if not lines:
            return BatchSaveResult(success=True, count=0)
        if not channel_name:
            return BatchSaveResult(success=False, count=0, error="channel_name is required")

        try:
            records = await asyncio.gather(
                *(self._build_record(channel_name, channel_id, line) for line in lines)
            )
            async with self.session_factory() as session:
                session.add_all(records)
                await session.commit()
        except SQLAlchemyError as e:
            store_logger.error(f"批量保存 {len(lines)} 条转写失败 ({channel_name}): {e!r}")
            return BatchSaveResult(success=False, count=0, error=_describe(e))
        except Exception as e:
            store_logger.opt(exception=e).error(f"批量保存转写时发生未知错误 ({channel_name})")
            return BatchSaveResult(success=False, count=0, error=_describe(e))

        store_logger.info(f"批量保存 {len(records)} 条转写 ({channel_name})")
        return BatchSaveResult(success=True, count=len(records))

    async def query(
        self,
        channel_name: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> QueryResult:
        """按入库时间倒序查询，时间范围两端均包含"""
        stmt = select(TvTranscript)
        if channel_name:
            stmt = stmt.where(TvTranscript.channel_name == channel_name)
        if start_date is not None:
            stmt = stmt.where(TvTranscript.created_at >= to_naive_utc(start_date))
        if end_date is not None:
            stmt = stmt.where(TvTranscript.created_at <= to_naive_utc(end_date))
        return await self._fetch(stmt, limit)

    async def query_political(
        self,
        channel_name: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> QueryResult:
        """只返回提及任一政党的记录"""
        stmt = select(TvTranscript).where(
            or_(TvTranscript.bjp_mention.is_(True), TvTranscript.tmc_mention.is_(True))
        )
        if channel_name:
            stmt = stmt.where(TvTranscript.channel_name == channel_name)
        return await self._fetch(stmt, limit)

    async def _fetch(self, stmt, limit: Optional[int]) -> QueryResult:
        stmt = stmt.order_by(
            TvTranscript.created_at.desc(), TvTranscript.id.desc()
        ).limit(self._clamp_limit(limit))

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            store_logger.error(f"查询转写失败: {e!r}")
            return QueryResult(data=None, error=_describe(e))

        return QueryResult(data=[TranscriptRecord.model_validate(row) for row in rows])

    async def stats(self, channel_name: Optional[str] = None) -> TranscriptStats:
        """一次聚合查询得到的时间点统计"""

        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        stmt = select(
            func.count(TvTranscript.id),
            count_where(TvTranscript.bjp_mention.is_(True)),
            count_where(TvTranscript.tmc_mention.is_(True)),
            count_where(TvTranscript.sentiment == "positive"),
            count_where(TvTranscript.sentiment == "negative"),
            count_where(TvTranscript.sentiment == "neutral"),
        )
        if channel_name:
            stmt = stmt.where(TvTranscript.channel_name == channel_name)

        try:
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).one()
        except SQLAlchemyError as e:
            store_logger.error(f"统计转写失败: {e!r}")
            return TranscriptStats(error=_describe(e))

        total, bjp, tmc, positive, negative, neutral = (int(value or 0) for value in row)
        return TranscriptStats(
            total=total,
            bjp_mentions=bjp,
            tmc_mentions=tmc,
            positive=positive,
            negative=negative,
            neutral=neutral,
        )
