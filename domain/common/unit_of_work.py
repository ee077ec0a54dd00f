"""Unit of Work 抽象：结账与对账的事务边界"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.checkout.repository import (
    ActorRepository,
    ContentRepository,
    PurchaseRepository,
    TransactionRepository,
)


class AbstractUnitOfWork(ABC):
    """
    ``async with uow:`` 正常退出时自动提交，异常退出时回滚。

    一次对账的交易记录、购买记录与创作者标记在同一个 UoW 内写入；
    readonly 用于结账前的校验查询，退出时不提交。
    """

    content_repository: ContentRepository
    transaction_repository: TransactionRepository
    purchase_repository: PurchaseRepository
    actor_repository: ActorRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
        elif not self._readonly and not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...
