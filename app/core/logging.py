"""
日志配置
"""

import sys
import logging
from pathlib import Path
from loguru import logger


class InterceptHandler(logging.Handler):
    """拦截标准库日志并转发给loguru"""

    def emit(self, record):
        # 获取对应的loguru等级
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 查找调用者
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(debug: bool = None, log_dir: str = None):
    """设置应用日志"""
    from app.config import settings

    if debug is None:
        debug = settings.debug
    log_path = Path(log_dir or settings.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # 移除默认的loguru处理器
    logger.remove()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<magenta>{extra[name]}</magenta> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )
    logger.configure(extra={"name": "app"})

    # 控制台日志
    logger.add(
        sys.stdout,
        format=log_format,
        level="DEBUG" if debug else "INFO",
        colorize=True,
        backtrace=True,
        diagnose=debug
    )

    # 应用日志
    logger.add(
        log_path / "campaign_intel.log",
        format=log_format,
        level="INFO",
        rotation="1 day",
        retention="30 days",
        compression="zip",
        backtrace=True,
        diagnose=False
    )

    # 错误日志
    logger.add(
        log_path / "campaign_intel_error.log",
        format=log_format,
        level="ERROR",
        rotation="1 week",
        retention="90 days",
        compression="zip",
        backtrace=True,
        diagnose=False
    )

    # 转写中继日志
    logger.add(
        log_path / "relay.log",
        format=log_format,
        level="DEBUG" if debug else "INFO",
        rotation="1 day",
        retention="7 days",
        filter=lambda record: record["extra"].get("name") == "relay",
        backtrace=True,
        diagnose=False
    )

    # 拦截标准库日志
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine", "websockets"]:
        logging_logger = logging.getLogger(logger_name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False

    if not debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("websockets").setLevel(logging.WARNING)


def get_logger(name: str):
    """获取特定名称的日志器"""
    return logger.bind(name=name)


# 创建模块专用日志器
api_logger = get_logger("api")
relay_logger = get_logger("relay")
store_logger = get_logger("store")
sentiment_logger = get_logger("sentiment")
panel_logger = get_logger("panel")
db_logger = get_logger("database")
