"""
数据库引擎与会话工厂
"""
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.config import DatabaseSettings, settings
from core.logging_config import get_logger
from infrastructure.models import Base


logger = get_logger(__name__)

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
}


def _build_async_url(database_url: str) -> str:
    """未写驱动的 postgres URL 补成 asyncpg；已带驱动的原样返回"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}，请在 DATABASE__URL 中指定异步驱动")
    return url.set(drivername=_ASYNC_DRIVERS[url.drivername]).render_as_string(hide_password=False)


def _engine_kwargs(config: DatabaseSettings) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"echo": config.echo, "pool_pre_ping": True}
    # sqlite 没有连接池参数
    if not make_url(config.url).drivername.startswith("sqlite"):
        kwargs["pool_size"] = config.pool_size
        kwargs["max_overflow"] = config.max_overflow
    return kwargs


engine = create_async_engine(_build_async_url(settings.database.url), **_engine_kwargs(settings.database))

# 提交后不过期对象：仓储在提交后仍会把 ORM 行转换成领域实体
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables() -> None:
    """开发环境直接建表；生产环境走 alembic 迁移"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_tables_ensured", tables=sorted(Base.metadata.tables))


async def dispose_engine() -> None:
    await engine.dispose()
