"""SQLAlchemy Unit of Work：一次对账/一次结账查询对应一个会话"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.checkout_repository import (
    SQLAlchemyActorRepository,
    SQLAlchemyContentRepository,
    SQLAlchemyPurchaseRepository,
    SQLAlchemyTransactionRepository,
)


logger = get_logger(__name__)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._owns_session = session is None
        self.session: Optional[AsyncSession] = session
        self._transaction: Optional[AsyncSessionTransaction] = None
        self._bind_repositories(None)

    def _bind_repositories(self, session: Optional[AsyncSession]) -> None:
        if session is None:
            self.content_repository = None
            self.transaction_repository = None
            self.purchase_repository = None
            self.actor_repository = None
            return
        self.content_repository = SQLAlchemyContentRepository(session)
        self.transaction_repository = SQLAlchemyTransactionRepository(session)
        self.purchase_repository = SQLAlchemyPurchaseRepository(session)
        self.actor_repository = SQLAlchemyActorRepository(session)

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._bind_repositories(self.session)
        # 只读模式依赖 autobegin，不显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._transaction is not None and self._transaction.is_active:
                await self._transaction.close()
            self._transaction = None
            if self._owns_session and self.session is not None:
                await self.session.close()
                self.session = None
            self._bind_repositories(None)

    async def commit(self) -> None:
        if not self._readonly and self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
            if not self._readonly:
                logger.info("unit_of_work_rolled_back")
        self._committed = False
