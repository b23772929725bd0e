"""
FastAPI应用入口点
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.core import (
    setup_logging,
    RequestLoggingMiddleware,
    ExceptionHandlingMiddleware,
    api_logger
)
from app.api.v1.endpoints.live import register_live_handlers
from app.core.websocket import ConnectionManager
from app.db.database import AsyncSessionLocal, init_db
from app.services.keywords import PoliticalKeywords
from app.services.relay import TranscriptRelayClient
from app.services.sentiment import create_sentiment_engine
from app.services.tagger import TranscriptTagger
from app.services.transcript_panel import TranscriptPanel
from app.services.transcript_store import TranscriptStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理，负责组装各服务并挂到 app.state"""
    api_logger.info("Starting Campaign Intelligence Transcript API...")

    try:
        await init_db()
        api_logger.info("Database initialized successfully")

        keywords = PoliticalKeywords.load(settings.political_keywords_path)
        tagger = TranscriptTagger(
            create_sentiment_engine(settings, keywords),
            keywords,
            timeout=settings.sentiment_timeout
        )
        store = TranscriptStore(
            tagger,
            AsyncSessionLocal,
            default_limit=settings.transcript_query_default_limit,
            max_limit=settings.transcript_query_max_limit
        )
        relay = TranscriptRelayClient.from_settings(settings)
        panel = TranscriptPanel(
            relay,
            store,
            channel_name=settings.default_channel_name,
            channel_id=settings.default_channel_id,
            max_lines=settings.transcript_buffer_size,
            restart_delay=settings.filter_restart_delay,
            auto_save=settings.auto_save
        )
        connection_manager = ConnectionManager()
        register_live_handlers(connection_manager, panel)
        api_logger.info("Transcript services initialized successfully")

    except Exception as e:
        api_logger.error(f"Failed to initialize application: {e}")
        raise

    app.state.tagger = tagger
    app.state.transcript_store = store
    app.state.relay = relay
    app.state.transcript_panel = panel
    app.state.connection_manager = connection_manager

    api_logger.info("Campaign Intelligence Transcript API started successfully")

    yield

    api_logger.info("Shutting down Campaign Intelligence Transcript API...")

    try:
        await panel.stop()
        await panel.close()
        await relay.close()
        api_logger.info("Relay and panel shutdown successfully")
    except Exception as e:
        api_logger.error(f"Error shutting down relay: {e}")

    try:
        await connection_manager.shutdown()
        api_logger.info("WebSocket connections closed")
    except Exception as e:
        api_logger.error(f"Error closing websocket connections: {e}")

    try:
        await tagger.close()
    except Exception as e:
        api_logger.error(f"Error closing sentiment engine: {e}")

    api_logger.info("Campaign Intelligence Transcript API shutdown completed")


# 设置日志
setup_logging()

# 创建FastAPI应用实例
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Live TV transcript relay and political sentiment tagging API",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# 添加中间件（后添加的在外层）
app.add_middleware(ExceptionHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": "Welcome to Campaign Intelligence Transcript API",
        "version": settings.app_version,
        "docs_url": "/docs" if settings.debug else None
    }


@app.get("/health")
async def health_check():
    """健康检查"""
    relay = getattr(app.state, "relay", None)
    manager = getattr(app.state, "connection_manager", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "relay": relay.state.value if relay else None,
        "subscribers": manager.get_connection_count() if manager else 0
    }


# 导入路由
from app.api.v1.api import api_router  # noqa: E402
app.include_router(api_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug"
    )
