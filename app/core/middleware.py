"""
中间件配置
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from app.core.exceptions import CampaignIntelException, campaign_exception_to_http_exception
from app.core.logging import api_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """请求日志中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        log = api_logger.bind(request_id=request_id, method=request.method, path=request.url.path)

        start_time = time.perf_counter()
        log.info(f"Request started - {request.method} {request.url.path}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            log.error(
                f"Request failed - {request.method} {request.url.path} "
                f"({round(process_time, 4)}s): {e!r}"
            )
            raise

        process_time = time.perf_counter() - start_time
        log.info(
            f"Request completed - {request.method} {request.url.path} "
            f"{response.status_code} ({round(process_time, 4)}s)"
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time, 4))

        return response


class ExceptionHandlingMiddleware(BaseHTTPMiddleware):
    """异常处理中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = getattr(request.state, "request_id", "unknown")
        try:
            return await call_next(request)
        except CampaignIntelException as exc:
            http_exc = campaign_exception_to_http_exception(exc)
            api_logger.bind(request_id=request_id, error_code=exc.code).error(
                f"Application exception on {request.url.path}: {exc.message}"
            )
            return JSONResponse(
                status_code=http_exc.status_code,
                content=http_exc.detail
            )
        except HTTPException as exc:
            api_logger.bind(request_id=request_id).warning(
                f"HTTP exception on {request.url.path}: {exc.status_code}"
            )
            raise
        except Exception as exc:
            api_logger.bind(request_id=request_id).opt(exception=exc).error(
                f"Unhandled exception on {request.url.path}: {type(exc).__name__}"
            )
            return JSONResponse(
                status_code=HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": True,
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "服务器内部错误",
                    "request_id": request_id
                }
            )
