"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings, and provide
in-memory stand-ins for the data store and the payment gateway.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DEBUG", "false")

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from domain.checkout.entity import CheckoutSession, ContentSnapshot, Purchase, Settlement, Transaction
from domain.checkout.repository import (
    ActorRepository,
    ContentRepository,
    PurchaseRepository,
    TransactionRepository,
)
from domain.common.exceptions import AlreadyPurchasedException
from domain.common.unit_of_work import AbstractUnitOfWork


BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_content(content_id: str, title: str, price: Optional[int], *, creator: str = "creator-1", age_days: int = 0):
    return ContentSnapshot(
        id=content_id,
        beneficiary_id=creator,
        title=title,
        price=price,
        status="published",
        created_at=BASE_TIME - timedelta(days=age_days),
    )


class InMemoryContentRepository(ContentRepository):
    def __init__(self):
        self.items: dict = {}
        self.views: dict = {}
        self.fail_increment = False

    def add(self, content: ContentSnapshot) -> ContentSnapshot:
        self.items[content.id] = content
        self.views.setdefault(content.id, 0)
        return content

    async def get_by_id(self, content_id):
        return self.items.get(content_id)

    async def search_by_title(self, title, limit=20):
        needle = title.lower()
        hits = [c for c in self.items.values() if needle in c.title.lower()]
        return sorted(hits, key=lambda c: c.created_at, reverse=True)[:limit]

    async def list_by_price(self, price, limit=20):
        hits = [c for c in self.items.values() if c.price == price]
        return sorted(hits, key=lambda c: c.created_at, reverse=True)[:limit]

    async def increment_views(self, content_id):
        if self.fail_increment:
            raise RuntimeError("views counter unavailable")
        self.views[content_id] = self.views.get(content_id, 0) + 1


class InMemoryTransactionRepository(TransactionRepository):
    def __init__(self):
        self.rows: List[Transaction] = []

    async def create(self, transaction):
        for row in self.rows:
            if transaction.provider_reference and row.provider_reference == transaction.provider_reference:
                return row
        transaction.id = transaction.id or f"tx-{len(self.rows) + 1}"
        self.rows.append(transaction)
        return transaction

    async def get_by_provider_reference(self, reference):
        return next((r for r in self.rows if r.provider_reference == reference), None)

    async def list_by_actor(self, actor_id, limit=10):
        rows = [r for r in self.rows if r.actor_id == actor_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)[:limit]


class InMemoryPurchaseRepository(PurchaseRepository):
    def __init__(self):
        self.rows: List[Purchase] = []
        self.hide_existing = False

    async def create(self, purchase):
        if any(p.actor_id == purchase.actor_id and p.subject_id == purchase.subject_id for p in self.rows):
            raise AlreadyPurchasedException(purchase.actor_id, purchase.subject_id)
        purchase.id = purchase.id or f"pu-{len(self.rows) + 1}"
        self.rows.append(purchase)
        return purchase

    async def get_by_actor_and_subject(self, actor_id, subject_id):
        if self.hide_existing:
            # 模拟并发：预检查时另一条流程尚未写入
            return None
        return next((p for p in self.rows if p.actor_id == actor_id and p.subject_id == subject_id), None)

    async def list_by_actor(self, actor_id, limit=100):
        return [p for p in self.rows if p.actor_id == actor_id][:limit]


class InMemoryActorRepository(ActorRepository):
    def __init__(self):
        self.creators: set = set()
        self.fail_update = False

    async def is_creator(self, actor_id):
        return actor_id in self.creators

    async def set_creator_flag(self, actor_id, value=True):
        if self.fail_update:
            raise RuntimeError("users table rejected the update")
        if value:
            self.creators.add(actor_id)
        else:
            self.creators.discard(actor_id)


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, data: "InMemoryData", *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.content_repository = data.contents
        self.transaction_repository = data.transactions
        self.purchase_repository = data.purchases
        self.actor_repository = data.actors
        self._data = data

    async def commit(self):
        self._committed = True
        self._data.commits += 1

    async def rollback(self):
        self._data.rollbacks += 1


class InMemoryData:
    def __init__(self):
        self.contents = InMemoryContentRepository()
        self.transactions = InMemoryTransactionRepository()
        self.purchases = InMemoryPurchaseRepository()
        self.actors = InMemoryActorRepository()
        self.commits = 0
        self.rollbacks = 0

    def uow_factory(self, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self, readonly=readonly)


class StubGateway:
    provider = "stub"

    def __init__(self, settlement: Optional[Settlement] = None, error: Optional[Exception] = None):
        self.settlement = settlement
        self.error = error
        self.polled: list = []
        self.initiated: list = []

    async def initiate(self, req):
        if self.error is not None:
            raise self.error
        self.initiated.append(req)
        return CheckoutSession(redirect_url="https://pay.example/checkout/tok_1", token="tok_1")

    async def poll_status(self, token):
        self.polled.append(token)
        if self.error is not None:
            raise self.error
        return self.settlement

    def build_redirect(self, url):
        from starlette.responses import RedirectResponse
        return RedirectResponse(url=url, status_code=303)

    async def aclose(self):
        pass


@pytest.fixture
def data() -> InMemoryData:
    return InMemoryData()


@pytest.fixture
def state_store():
    from infrastructure.cache.checkout_state import InMemoryCheckoutStateStore
    return InMemoryCheckoutStateStore(ttl=60)


@pytest.fixture(name="make_content")
def make_content_fixture():
    return make_content


@pytest.fixture
def make_gateway():
    return StubGateway
