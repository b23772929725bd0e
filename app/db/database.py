"""
数据库连接和会话管理
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import MetaData
from typing import Optional
import logging

from app.config import settings
from app.core.logging import db_logger

# 数据库元数据配置
metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s"
    }
)


class Base(DeclarativeBase):
    """数据库模型基类"""
    metadata = metadata


def create_database_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """创建数据库引擎"""
    url = database_url or settings.database_url
    engine_kwargs = {
        "echo": settings.database_echo,
    }

    # 根据数据库类型配置连接池
    if url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 3600,  # 1小时回收连接
        })
    elif url.startswith("sqlite"):
        engine_kwargs.update({
            "connect_args": {"check_same_thread": False}
        })

    return create_async_engine(url, **engine_kwargs)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """创建会话工厂"""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False
    )


# 创建数据库引擎和会话工厂
engine = create_database_engine()
AsyncSessionLocal = create_session_factory(engine)

if settings.database_echo:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


async def init_db(bind: Optional[AsyncEngine] = None):
    """初始化数据库表"""
    target = bind or engine
    async with target.begin() as conn:
        # 导入模型以确保表已注册
        from app.models import transcript  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)
    db_logger.info("数据库表已就绪")
