"""
应用配置管理
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    """应用配置"""

    # 基本配置
    app_name: str = "Campaign Intelligence Transcript API"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False, description="调试模式")

    # 服务器配置
    host: str = Field(default="0.0.0.0", description="服务器地址")
    port: int = Field(default=8000, description="服务器端口")

    # 数据库配置
    database_url: str = Field(
        default="sqlite+aiosqlite:///./campaign_intel.db",
        description="数据库连接URL"
    )
    database_echo: bool = Field(default=False, description="SQL语句调试输出")
    database_pool_size: int = Field(default=10, description="连接池大小")
    database_max_overflow: int = Field(default=20, description="连接池最大溢出")

    # 转写中继配置
    transcription_server_url: str = Field(
        default="ws://localhost:3002/transcription",
        description="转写中继服务WebSocket地址"
    )
    relay_connect_timeout: float = Field(default=10.0, description="中继连接超时(秒)")
    relay_max_message_size: int = Field(default=2 * 1024 * 1024, description="单条中继消息最大字节数")

    # 情感分析配置
    sentiment_provider: str = Field(
        default="keyword",
        description="情感分析引擎: keyword / openai / anthropic"
    )
    sentiment_timeout: float = Field(default=5.0, description="单次情感分析超时(秒)")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API密钥")
    openai_base_url: Optional[str] = Field(default=None, description="OpenAI API基础URL")
    openai_model: str = Field(default="gpt-4o-mini", description="默认OpenAI模型")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API密钥")
    anthropic_base_url: str = Field(default="https://api.anthropic.com", description="Anthropic API基础URL")
    anthropic_model: str = Field(default="claude-3-haiku-20240307", description="默认Anthropic模型")
    political_keywords_path: Optional[str] = Field(
        default=None,
        description="政党关键词JSON文件路径，留空使用内置词表"
    )

    # 实时面板配置
    transcript_buffer_size: int = Field(default=50, description="面板保留的最近转写行数")
    filter_restart_delay: float = Field(default=0.5, description="切换政治过滤时的重启间隔(秒)")
    auto_save: bool = Field(default=True, description="是否自动保存实时转写")
    default_channel_name: str = Field(default="Live TV", description="默认频道名称")
    default_channel_id: Optional[str] = Field(default=None, description="默认频道ID")

    # 查询配置
    transcript_query_default_limit: int = Field(default=100, description="默认查询条数")
    transcript_query_max_limit: int = Field(default=1000, description="单次查询最大条数")

    # CORS配置
    allowed_origins: list = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="允许的跨域源"
    )

    # 日志配置
    log_dir: str = Field(default="logs", description="日志目录")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def ensure_directories(self):
        """确保必要的目录存在"""
        Path(self.log_dir).mkdir(parents=True, exist_ok=True)


# 创建全局配置实例
settings = Settings()
settings.ensure_directories()
