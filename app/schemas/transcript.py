"""
转写相关的Pydantic模式
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.services.keywords import normalize_text


class SentimentLabel(str, Enum):
    """情感标签"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


TranscriptionStatusValue = Literal[
    "getting_stream",
    "stream_found",
    "capturing",
    "transcribing",
    "chunk_error",
    "refreshing_stream",
    "stream_refreshed",
    "stream_lost",
    "error",
    "stopped",
    "already_running",
]


class TranscriptLine(BaseModel):
    """实时转写行（线上字段名为 camelCase）"""
    id: Optional[str] = Field(None, description="转写行ID，接收时分配")
    timestamp: str = Field(default="", description="采集时间（仅用于展示）")
    bengali: str = Field(default="", description="孟加拉语文本")
    hindi: str = Field(default="", description="印地语文本")
    english: str = Field(default="", description="英语文本")
    sentiment: Optional[SentimentLabel] = Field(None, description="情感标签")
    bjp_mention: Optional[bool] = Field(None, alias="bjpMention", description="是否提及BJP")
    tmc_mention: Optional[bool] = Field(None, alias="tmcMention", description="是否提及TMC")

    class Config:
        populate_by_name = True

    @field_validator("sentiment", mode="before")
    @classmethod
    def _unknown_sentiment_as_missing(cls, value):
        # 无法识别的标签视为未标注，入库时重新分析
        if value is None or isinstance(value, SentimentLabel):
            return value
        if isinstance(value, str) and value.lower() in SentimentLabel._value2member_map_:
            return value.lower()
        return None

    @field_validator("bengali", "hindi", "english", "timestamp", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return "" if value is None else value

    @property
    def combined_text(self) -> str:
        """三种语言文本拼接，用于关键词检测和情感分析"""
        return " ".join(part for part in (self.bengali, self.hindi, self.english) if part)

    def matches(self, query: str) -> bool:
        """大小写不敏感地匹配任一语言字段，两侧都做NFC归一"""
        needle = normalize_text(query)
        return (
            needle in normalize_text(self.bengali)
            or needle in normalize_text(self.hindi)
            or needle in normalize_text(self.english)
        )


class TranscriptionStatus(BaseModel):
    """中继会话状态信号，不入库"""
    channel_id: str = Field(..., alias="channelId", description="频道ID")
    status: TranscriptionStatusValue = Field(..., description="状态")
    message: str = Field(default="", description="状态说明")

    class Config:
        populate_by_name = True


class RelayError(BaseModel):
    """中继错误事件"""
    channel_id: str = Field(default="unknown", alias="channelId", description="频道ID")
    error: str = Field(..., description="错误信息")

    class Config:
        populate_by_name = True


class TranscriptRecord(BaseModel):
    """已入库的转写记录"""
    id: int = Field(..., description="记录ID")
    channel_name: str = Field(..., description="频道名称")
    channel_id: Optional[str] = Field(None, description="频道ID")
    transcript_time: str = Field(default="", description="采集时间")
    bengali_text: str = Field(default="", description="孟加拉语文本")
    hindi_text: str = Field(default="", description="印地语文本")
    english_text: str = Field(default="", description="英语文本")
    sentiment: SentimentLabel = Field(default=SentimentLabel.NEUTRAL, description="情感标签")
    sentiment_score: Optional[float] = Field(None, description="情感分数", ge=0, le=1)
    bjp_mention: bool = Field(default=False, description="是否提及BJP")
    tmc_mention: bool = Field(default=False, description="是否提及TMC")
    created_at: datetime = Field(..., description="入库时间(UTC)")

    class Config:
        from_attributes = True

    def to_line(self) -> TranscriptLine:
        """转换为面板展示用的转写行"""
        return TranscriptLine(
            id=str(self.id),
            timestamp=self.transcript_time,
            bengali=self.bengali_text,
            hindi=self.hindi_text,
            english=self.english_text,
            sentiment=self.sentiment,
            bjp_mention=self.bjp_mention,
            tmc_mention=self.tmc_mention,
        )


class SaveResult(BaseModel):
    """单条保存结果"""
    success: bool
    error: Optional[str] = None


class BatchSaveResult(BaseModel):
    """批量保存结果，失败时 count 为 0"""
    success: bool
    count: int = 0
    error: Optional[str] = None


class QueryResult(BaseModel):
    """查询结果，data 为 None 表示不可用（区别于空列表）"""
    data: Optional[List[TranscriptRecord]] = None
    error: Optional[str] = None


class TranscriptStats(BaseModel):
    """转写统计"""
    total: int = 0
    bjp_mentions: int = 0
    tmc_mentions: int = 0
    positive: int = 0
    negative: int = 0
    neutral: int = 0
    error: Optional[str] = None


class TranscriptSaveRequest(BaseModel):
    """保存单条转写请求"""
    channel_name: str = Field(..., min_length=1, description="频道名称")
    channel_id: Optional[str] = Field(None, description="频道ID")
    line: TranscriptLine = Field(..., description="转写行")


class TranscriptBatchSaveRequest(BaseModel):
    """批量保存转写请求"""
    channel_name: str = Field(..., min_length=1, description="频道名称")
    channel_id: Optional[str] = Field(None, description="频道ID")
    lines: List[TranscriptLine] = Field(default_factory=list, description="转写行列表")


class TagRequest(BaseModel):
    """临时标注请求"""
    text: str = Field(..., description="待标注文本")


class TagResponse(BaseModel):
    """标注结果"""
    sentiment: SentimentLabel
    score: float = Field(..., ge=0, le=1)
    bjp_mention: bool
    tmc_mention: bool
