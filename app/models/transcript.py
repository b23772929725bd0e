"""
电视转写数据模型
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, Integer, Float, Boolean, DateTime, Index
from sqlalchemy.sql import func

from app.db.database import Base


def utcnow() -> datetime:
    """当前UTC时间（不带时区，与存储格式一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TvTranscript(Base):
    """电视直播转写记录，只追加不修改"""
    __tablename__ = "tv_transcripts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_name = Column(String(255), nullable=False, index=True, comment="频道名称")
    channel_id = Column(String(255), nullable=True, comment="频道ID")
    transcript_time = Column(String(64), nullable=False, default="", comment="采集时间（展示用）")

    bengali_text = Column(Text, nullable=False, default="", comment="孟加拉语文本")
    hindi_text = Column(Text, nullable=False, default="", comment="印地语文本")
    english_text = Column(Text, nullable=False, default="", comment="英语文本")

    sentiment = Column(String(16), nullable=False, default="neutral", comment="情感倾向")
    sentiment_score = Column(Float, nullable=True, comment="情感分数(0-1)")
    bjp_mention = Column(Boolean, nullable=False, default=False, comment="是否提及BJP")
    tmc_mention = Column(Boolean, nullable=False, default=False, comment="是否提及TMC")

    created_at = Column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="入库时间(UTC)"
    )

    __table_args__ = (
        Index("ix_tv_transcripts_channel_created", "channel_name", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TvTranscript id={self.id} channel={self.channel_name!r} sentiment={self.sentiment}>"
