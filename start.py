#!/usr/bin/env python3
"""
Campaign Intel API 启动脚本
"""

import asyncio
import sys
from pathlib import Path

# 添加项目根目录到 Python 路径
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))


async def main():
    """主启动函数"""
    print("🚀 启动 Campaign Intel API...")

    try:
        from app.config import settings
    except Exception as e:
        print(f"❌ 配置加载失败: {e}")
        print("请检查 .env 文件中的配置项")
        sys.exit(1)

    if not settings.default_channel_id:
        print("⚠️  未配置 DEFAULT_CHANNEL_ID，开始转写时需要在请求中指定频道")

    print(f"📊 运行模式: {'开发' if settings.debug else '生产'}")
    print(f"📡 转写中继: {settings.transcription_server_url}")
    print(f"🧠 情感引擎: {settings.sentiment_provider}")
    print(f"🌐 服务地址: http://{settings.host}:{settings.port}")

    import uvicorn

    config = uvicorn.Config(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug",
        access_log=True
    )

    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Campaign Intel API 已停止")
    except Exception as e:
        print(f"❌ 启动失败: {e}")
        sys.exit(1)
