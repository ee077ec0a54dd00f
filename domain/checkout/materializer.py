"""
Purchase materializer - turns a confirmed settlement into durable records.

The data store is only assumed to offer single-row operations, so every
step is written to be safely re-run: a transaction already recorded for the
same provider reference is reused, and an existing purchase short-circuits
to ALREADY_PURCHASED.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from domain.common.exceptions import (
    AlreadyPurchasedException,
    DomainValidationException,
    UnresolvedActorException,
)
from .entity import ContentSnapshot, Correlation, Purchase, Purpose, Settlement, Transaction
from .repository import ActorRepository, ContentRepository, PurchaseRepository, TransactionRepository


logger = structlog.get_logger(__name__)


class MaterializationOutcome(str, Enum):
    PURCHASED = "purchased"
    GENERIC = "generic"
    ALREADY_PURCHASED = "already_purchased"
    ACTIVATED = "activated"
    PAID_NOT_ACTIVATED = "paid_not_activated"


@dataclass(frozen=True)
class MaterializationResult:
    outcome: MaterializationOutcome
    subject_id: Optional[str] = None
    transaction_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_partial(self) -> bool:
        return self.outcome is MaterializationOutcome.PAID_NOT_ACTIVATED

    @property
    def has_subject(self) -> bool:
        return self.subject_id is not None


class PurchaseMaterializer:
    """
    领域服务：持久化一次已确认支付的结果

    职责：
    1. 每次结算只写一条 Transaction（按渠道流水号复用）
    2. 同一 (actor, subject) 最多一条 Purchase
    3. 内容购买后尽力增加浏览计数
    4. 创作者激活失败时返回“已付款未激活”，不得伪装为成功或失败
    """

    def __init__(
        self,
        content_repository: ContentRepository,
        transaction_repository: TransactionRepository,
        purchase_repository: PurchaseRepository,
        actor_repository: ActorRepository,
        *,
        currency: str = "XOF",
    ):
        self.content_repository = content_repository
        self.transaction_repository = transaction_repository
        self.purchase_repository = purchase_repository
        self.actor_repository = actor_repository
        self.currency = currency

    async def materialize(self, correlation: Correlation, settlement: Settlement) -> MaterializationResult:
        if not settlement.is_paid:
            raise DomainValidationException(
                f"Cannot materialize a {settlement.state.value} settlement",
                field="settlement",
            )
        if not correlation.actor_id:
            raise UnresolvedActorException(settlement.token)

        if correlation.purpose is Purpose.CREATOR_ACTIVATION:
            return await self._activate(correlation, settlement)

        subject = None
        if correlation.subject_id:
            subject = await self.content_repository.get_by_id(correlation.subject_id)
            if subject is None:
                logger.warning(
                    "materialize_subject_missing",
                    subject_id=correlation.subject_id,
                    source=correlation.source,
                )

        if subject is not None:
            existing = await self.purchase_repository.get_by_actor_and_subject(correlation.actor_id, subject.id)
            if existing is not None:
                logger.info("materialize_already_purchased", actor_id=correlation.actor_id, subject_id=subject.id)
                return MaterializationResult(
                    MaterializationOutcome.ALREADY_PURCHASED,
                    subject_id=subject.id,
                    transaction_id=existing.transaction_id,
                )

        transaction = await self._record_transaction(correlation, settlement, subject)

        if subject is None:
            return MaterializationResult(MaterializationOutcome.GENERIC, transaction_id=transaction.id)

        try:
            await self.purchase_repository.create(
                Purchase(
                    id=None,
                    actor_id=correlation.actor_id,
                    subject_id=subject.id,
                    transaction_id=transaction.id,
                    amount_paid=transaction.amount,
                )
            )
        except AlreadyPurchasedException:
            # A concurrent return flow for the same item won the insert
            logger.warning("materialize_purchase_race", actor_id=correlation.actor_id, subject_id=subject.id)
            return MaterializationResult(
                MaterializationOutcome.ALREADY_PURCHASED,
                subject_id=subject.id,
                transaction_id=transaction.id,
            )

        await self._bump_views(subject.id)
        return MaterializationResult(
            MaterializationOutcome.PURCHASED,
            subject_id=subject.id,
            transaction_id=transaction.id,
        )

    async def _activate(self, correlation: Correlation, settlement: Settlement) -> MaterializationResult:
        transaction = await self._record_transaction(correlation, settlement, None)
        try:
            await self.actor_repository.set_creator_flag(correlation.actor_id, True)
        except Exception as exc:
            logger.error(
                "creator_activation_failed_after_payment",
                actor_id=correlation.actor_id,
                transaction_id=transaction.id,
                reference=settlement.reference,
                error=str(exc),
            )
            return MaterializationResult(
                MaterializationOutcome.PAID_NOT_ACTIVATED,
                transaction_id=transaction.id,
                reason=str(exc) or exc.__class__.__name__,
            )
        logger.info("creator_activated", actor_id=correlation.actor_id, transaction_id=transaction.id)
        return MaterializationResult(MaterializationOutcome.ACTIVATED, transaction_id=transaction.id)

    async def _record_transaction(
        self,
        correlation: Correlation,
        settlement: Settlement,
        subject: Optional[ContentSnapshot],
    ) -> Transaction:
        if settlement.reference:
            existing = await self.transaction_repository.get_by_provider_reference(settlement.reference)
            if existing is not None:
                logger.info("transaction_reused", transaction_id=existing.id, reference=settlement.reference)
                return existing

        amount = settlement.amount
        if amount is None:
            amount = subject.price if subject is not None and subject.price is not None else 0

        return await self.transaction_repository.create(
            Transaction(
                id=None,
                actor_id=correlation.actor_id,
                subject_id=subject.id if subject is not None else None,
                beneficiary_id=subject.beneficiary_id if subject is not None else None,
                amount=amount,
                kind=correlation.purpose,
                provider_reference=settlement.reference,
                currency=self.currency,
            )
        )

    async def _bump_views(self, content_id: str) -> None:
        try:
            await self.content_repository.increment_views(content_id)
        except Exception as exc:
            logger.warning("content_views_increment_failed", content_id=content_id, error=str(exc))
