"""
Checkout repository interfaces - what the data store must offer the core.

All operations are single-row request/response; no multi-insert
transaction is assumed by the domain services.
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import ContentSnapshot, Transaction, Purchase


class ContentRepository(ABC):
    """Read-mostly access to content rows used to complete a correlation."""

    @abstractmethod
    async def get_by_id(self, content_id: str) -> Optional[ContentSnapshot]:
        pass

    @abstractmethod
    async def search_by_title(self, title: str, limit: int = 20) -> List[ContentSnapshot]:
        """Case-insensitive substring match on title."""
        pass

    @abstractmethod
    async def list_by_price(self, price: int, limit: int = 20) -> List[ContentSnapshot]:
        """Exact price match, newest first."""
        pass

    @abstractmethod
    async def increment_views(self, content_id: str) -> None:
        pass


class TransactionRepository(ABC):

    @abstractmethod
    async def create(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def get_by_provider_reference(self, reference: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def list_by_actor(self, actor_id: str, limit: int = 10) -> List[Transaction]:
        pass


class PurchaseRepository(ABC):

    @abstractmethod
    async def create(self, purchase: Purchase) -> Purchase:
        """Insert; raises AlreadyPurchasedException on (actor, subject) conflict."""
        pass

    @abstractmethod
    async def get_by_actor_and_subject(self, actor_id: str, subject_id: str) -> Optional[Purchase]:
        pass

    @abstractmethod
    async def list_by_actor(self, actor_id: str, limit: int = 100) -> List[Purchase]:
        pass


class ActorRepository(ABC):

    @abstractmethod
    async def is_creator(self, actor_id: str) -> bool:
        pass

    @abstractmethod
    async def set_creator_flag(self, actor_id: str, value: bool = True) -> None:
        """Raises when the actor row cannot be updated."""
        pass
