"""
请求/响应日志中间件
记录每个HTTP请求的方法、路径、状态码和耗时
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_config import get_logger


logger = get_logger(__name__)

# 支付 token 出现在回调 URL 的查询串里，日志中只保留前缀
SENSITIVE_PARAMS = {"token", "access_token", "tokenPay"}


def mask_query_params(params: dict) -> dict:
    masked = {}
    for key, value in params.items():
        if key in SENSITIVE_PARAMS and value:
            masked[key] = f"{value[:4]}***"
        else:
            masked[key] = value
    return masked


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求耗时与结果日志；异常交给全局异常处理器"""

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        query = mask_query_params(dict(request.query_params))
        logger.info("request_started", query_params=query)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - start, 4),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        duration = time.perf_counter() - start
        log = logger.warning if response.status_code >= 500 else logger.info
        log("request_completed", status_code=response.status_code, duration=round(duration, 4))
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response
