"""
结账仓储实现 - 使用SQLAlchemy实现数据访问

插入都包在 SAVEPOINT（begin_nested）里：唯一约束冲突只回滚这一步，
外层事务里已经写入的交易记录不受影响。
"""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.checkout.entity import (
    ContentSnapshot,
    Purchase,
    Purpose,
    Transaction,
    TransactionStatus,
)
from domain.checkout.repository import (
    ActorRepository,
    ContentRepository,
    PurchaseRepository,
    TransactionRepository,
)
from domain.common.exceptions import AlreadyPurchasedException, BusinessException
from infrastructure.models.base import new_id
from infrastructure.models.checkout import ContentModel, PurchaseModel, TransactionModel, UserModel
from shared.codes import BusinessCode
from core.logging_config import get_logger


logger = get_logger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLAlchemyContentRepository(ContentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ContentModel) -> ContentSnapshot:
        return ContentSnapshot(
            id=model.id,
            beneficiary_id=model.creator_id,
            title=model.title,
            price=model.price,
            status=model.status,
            created_at=model.created_at,
        )

    async def get_by_id(self, content_id: str) -> Optional[ContentSnapshot]:
        result = await self.session.execute(select(ContentModel).where(ContentModel.id == content_id))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def search_by_title(self, title: str, limit: int = 20) -> List[ContentSnapshot]:
        """标题模糊匹配（不区分大小写）"""
        pattern = f"%{_escape_like(title.strip())}%"
        result = await self.session.execute(
            select(ContentModel)
            .where(ContentModel.title.ilike(pattern, escape="\\"))
            .order_by(ContentModel.created_at.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_price(self, price: int, limit: int = 20) -> List[ContentSnapshot]:
        result = await self.session.execute(
            select(ContentModel)
            .where(ContentModel.price == price)
            .order_by(ContentModel.created_at.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def increment_views(self, content_id: str) -> None:
        async with self.session.begin_nested():
            await self.session.execute(
                update(ContentModel)
                .where(ContentModel.id == content_id)
                .values(views=ContentModel.views + 1)
            )


class SQLAlchemyTransactionRepository(TransactionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TransactionModel) -> Transaction:
        return Transaction(
            id=model.id,
            actor_id=model.user_id,
            subject_id=model.content_id,
            beneficiary_id=model.creator_id,
            amount=model.amount,
            kind=Purpose.from_wire(model.type) or Purpose.CONTENT_PURCHASE,
            provider_reference=model.payment_reference,
            status=TransactionStatus(model.status),
            currency=model.currency,
            payment_method=model.payment_method,
            created_at=model.created_at,
        )

    def _to_model(self, entity: Transaction) -> TransactionModel:
        return TransactionModel(
            id=entity.id or new_id(),
            user_id=entity.actor_id,
            creator_id=entity.beneficiary_id,
            content_id=entity.subject_id,
            amount=entity.amount,
            currency=entity.currency,
            payment_method=entity.payment_method,
            status=entity.status.value,
            type=entity.kind.value,
            payment_reference=entity.provider_reference,
            created_at=entity.created_at,
        )

    async def create(self, transaction: Transaction) -> Transaction:
        """创建交易记录；同一渠道流水号已存在时返回已有记录"""
        db_tx = self._to_model(transaction)
        try:
            async with self.session.begin_nested():
                self.session.add(db_tx)
                await self.session.flush()
        except IntegrityError:
            if not transaction.provider_reference:
                raise
            existing = await self.get_by_provider_reference(transaction.provider_reference)
            if existing is None:
                raise
            logger.warning(
                "transaction_create_conflict",
                reference=transaction.provider_reference,
                transaction_id=existing.id,
            )
            return existing
        await self.session.refresh(db_tx)
        logger.info(
            "transaction_created",
            transaction_id=db_tx.id,
            user_id=db_tx.user_id,
            type=db_tx.type,
            amount=db_tx.amount,
        )
        return self._to_entity(db_tx)

    async def get_by_provider_reference(self, reference: str) -> Optional[Transaction]:
        result = await self.session.execute(
            select(TransactionModel).where(TransactionModel.payment_reference == reference)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_actor(self, actor_id: str, limit: int = 10) -> List[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.user_id == actor_id)
            .order_by(TransactionModel.created_at.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyPurchaseRepository(PurchaseRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PurchaseModel) -> Purchase:
        return Purchase(
            id=model.id,
            actor_id=model.user_id,
            subject_id=model.content_id,
            transaction_id=model.transaction_id,
            amount_paid=model.amount_paid,
            purchased_at=model.purchased_at,
        )

    async def create(self, purchase: Purchase) -> Purchase:
        db_purchase = PurchaseModel(
            id=purchase.id or new_id(),
            user_id=purchase.actor_id,
            content_id=purchase.subject_id,
            transaction_id=purchase.transaction_id,
            amount_paid=purchase.amount_paid,
            purchased_at=purchase.purchased_at,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(db_purchase)
                await self.session.flush()
        except IntegrityError:
            # 只有 (user_id, content_id) 行确实存在才算重复购买；其他约束错误原样抛出
            existing = await self.get_by_actor_and_subject(purchase.actor_id, purchase.subject_id)
            if existing is None:
                raise
            logger.warning(
                "purchase_create_conflict",
                user_id=purchase.actor_id,
                content_id=purchase.subject_id,
                purchase_id=existing.id,
            )
            raise AlreadyPurchasedException(purchase.actor_id, purchase.subject_id)
        await self.session.refresh(db_purchase)
        logger.info("purchase_created", purchase_id=db_purchase.id, user_id=db_purchase.user_id,
                    content_id=db_purchase.content_id)
        return self._to_entity(db_purchase)

    async def get_by_actor_and_subject(self, actor_id: str, subject_id: str) -> Optional[Purchase]:
        result = await self.session.execute(
            select(PurchaseModel).where(
                PurchaseModel.user_id == actor_id,
                PurchaseModel.content_id == subject_id,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_actor(self, actor_id: str, limit: int = 100) -> List[Purchase]:
        result = await self.session.execute(
            select(PurchaseModel)
            .where(PurchaseModel.user_id == actor_id)
            .order_by(PurchaseModel.purchased_at.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyActorRepository(ActorRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_creator(self, actor_id: str) -> bool:
        result = await self.session.execute(select(UserModel.is_creator).where(UserModel.id == actor_id))
        return bool(result.scalar_one_or_none())

    async def set_creator_flag(self, actor_id: str, value: bool = True) -> None:
        async with self.session.begin_nested():
            result = await self.session.execute(
                update(UserModel).where(UserModel.id == actor_id).values(is_creator=value)
            )
        if result.rowcount == 0:
            raise BusinessException(
                code=BusinessCode.NOT_FOUND,
                message="User not found",
                error_type="ActorNotFound",
                details={"actor_id": actor_id},
            )
        logger.info("creator_flag_updated", user_id=actor_id, is_creator=value)
