"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_gateway
from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import payments as payments_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.cache import get_redis_cache, init_redis_cache, shutdown_redis_cache
from infrastructure.database import create_tables, dispose_engine


# 在入口处配置日志，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


async def _start_redis() -> None:
    if not settings.redis.url:
        logger.warning("redis_not_configured", fallback="in_memory_checkout_state")
        return
    try:
        cache = await init_redis_cache()
        await cache.ping()
        logger.info("redis_cache_initialized", namespace=settings.redis.namespace)
    except Exception as exc:
        # 结账状态退回进程内存储，多实例部署时回跳页可能找不到状态
        logger.error("redis_cache_init_failed", error=str(exc), fallback="in_memory_checkout_state")
        await shutdown_redis_cache()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DEBUG:
        await create_tables()
    else:
        logger.info("database_migrations_required", hint="alembic upgrade head")
    await _start_redis()
    logger.info("application_started", provider=payment_settings.default_provider, environment=settings.ENVIRONMENT)

    yield

    # 网关客户端按需创建，未用过则无需关闭
    if get_gateway.cache_info().currsize:
        await get_gateway().aclose()
        get_gateway.cache_clear()
    await shutdown_redis_cache()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="移动支付结账与到账对账服务",
)

# 中间件后添加的先执行：CORS 最外层，其次 request_id，日志依赖 request_id
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """存活检查；checkout_state 表明结账状态存在 Redis 还是进程内存"""
    return success_response(
        data={
            "status": "healthy",
            "checkout_state": "redis" if get_redis_cache() is not None else "memory",
            "payment_provider": payment_settings.default_provider,
        },
        message="OK",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
