"""
实时面板相关的Pydantic模式
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.transcript import TranscriptLine


class LiveStartRequest(BaseModel):
    """开始实时转写请求"""
    channel_name: Optional[str] = Field(None, description="频道名称，留空沿用当前频道")
    channel_id: Optional[str] = Field(None, description="频道ID，留空沿用当前频道")
    filter_political: Optional[bool] = Field(None, description="是否只转写政治内容")


class AutoSaveRequest(BaseModel):
    """自动保存开关"""
    enabled: bool = Field(..., description="是否自动保存")


class PanelState(BaseModel):
    """实时面板快照"""
    connection_status: str = Field(..., description="连接状态")
    save_status: str = Field(..., description="保存状态")
    is_real_mode: bool = Field(..., description="是否正在接收实时转写")
    filter_political: bool = Field(..., description="政治过滤开关")
    auto_save: bool = Field(..., description="自动保存开关")
    saved_count: int = Field(..., description="本次会话已保存条数")
    store_count: int = Field(..., description="最近一次从存储加载的条数")
    is_loading_from_store: bool = Field(..., description="是否正在从存储加载")
    channel_name: str = Field(..., description="频道名称")
    channel_id: Optional[str] = Field(None, description="频道ID")
    lines: List[TranscriptLine] = Field(default_factory=list, description="缓冲区中的转写行")
