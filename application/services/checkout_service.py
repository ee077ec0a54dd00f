"""
Application service orchestrating checkout use-cases.

This class depends only on the application ports (PaymentGateway,
CheckoutStateStore) and DTOs. Gateway and store implementations are provided
by infrastructure and injected from the composition root (API), keeping
dependencies one-way.
"""
from __future__ import annotations

import re
import secrets
import time
from typing import Callable, List, Optional

from application.dtos.checkout import CheckoutSessionDTO, PurchaseDTO, StartCheckout, TransactionDTO
from application.ports.checkout_state import CheckoutStateStore
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.checkout.entity import Actor, ChargeRequest, CheckoutState, Purpose
from domain.common.exceptions import (
    AlreadyCreatorException,
    AlreadyPurchasedException,
    ContentNotFoundException,
    DomainValidationException,
    InvalidPhoneNumberException,
)
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


def generate_payment_reference(purpose: Purpose, actor_id: str) -> str:
    """{PURPOSE}_{ACTOR}_{MILLIS}_{RANDOM}, uppercased."""
    millis = int(time.time() * 1000)
    suffix = secrets.token_hex(3)
    return f"{purpose.value}_{actor_id}_{millis}_{suffix}".upper()


class CheckoutApplicationService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        state_store: CheckoutStateStore,
        *,
        return_url: str,
        activation_amount: int = 200,
        phone_pattern: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self.state_store = state_store
        self.return_url = return_url
        self.activation_amount = activation_amount
        self._phone_re = re.compile(phone_pattern) if phone_pattern else None

    async def start_checkout(self, actor: Actor, payload: StartCheckout, session_id: str) -> CheckoutSessionDTO:
        self._check_phone(payload.payer_phone)

        subject_id: Optional[str] = None
        subject_title: Optional[str] = None
        async with self._uow_factory(readonly=True) as uow:
            if payload.purpose is Purpose.CREATOR_ACTIVATION:
                if await uow.actor_repository.is_creator(actor.id):
                    raise AlreadyCreatorException(actor.id)
                amount = self.activation_amount
            else:
                content = await uow.content_repository.get_by_id(payload.content_id)
                if content is None:
                    raise ContentNotFoundException(payload.content_id)
                if not content.price or content.price <= 0:
                    raise DomainValidationException("Content is not for sale", field="content_id")
                owned = await uow.purchase_repository.get_by_actor_and_subject(actor.id, content.id)
                if owned is not None:
                    raise AlreadyPurchasedException(actor.id, content.id)
                amount = content.price
                subject_id = content.id
                subject_title = content.title

        reference = generate_payment_reference(payload.purpose, actor.id)
        charge = ChargeRequest(
            actor_id=actor.id,
            actor_email=actor.email,
            actor_display_name=actor.display_name,
            amount=amount,
            purpose=payload.purpose,
            subject_id=subject_id,
            subject_title=subject_title,
            payer_phone=payload.payer_phone,
            return_url=self.return_url,
            reference=reference,
        )

        await self.state_store.save(
            session_id,
            CheckoutState(
                subject_id=subject_id,
                subject_title=subject_title,
                amount=amount,
                actor_id=actor.id,
                purpose=payload.purpose.value,
                reference=reference,
            ),
        )
        logger.info(
            "checkout_initiate_request",
            actor_id=actor.id,
            purpose=payload.purpose.value,
            subject_id=subject_id,
            amount=amount,
            reference=reference,
            provider=self.gateway.provider,
        )
        try:
            session = await self.gateway.initiate(charge)
        except Exception:
            await self.state_store.clear(session_id)
            raise
        logger.info("checkout_initiate_response", reference=reference, token=session.token)
        return CheckoutSessionDTO(redirect_url=session.redirect_url, token=session.token, reference=reference)

    async def list_transactions(self, actor_id: str, limit: int = 10) -> List[TransactionDTO]:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.transaction_repository.list_by_actor(actor_id, limit=limit)
        return [
            TransactionDTO(
                id=t.id,
                amount=t.amount,
                currency=t.currency,
                kind=t.kind.value,
                status=t.status.value,
                content_id=t.subject_id,
                creator_id=t.beneficiary_id,
                payment_reference=t.provider_reference,
                created_at=t.created_at,
            )
            for t in rows
        ]

    async def list_purchases(self, actor_id: str) -> List[PurchaseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.purchase_repository.list_by_actor(actor_id)
        return [
            PurchaseDTO(
                id=p.id,
                content_id=p.subject_id,
                transaction_id=p.transaction_id,
                amount_paid=p.amount_paid,
                purchased_at=p.purchased_at,
            )
            for p in rows
        ]

    def _check_phone(self, phone: Optional[str]) -> None:
        if phone is None or self._phone_re is None:
            return
        if not self._phone_re.match(phone):
            raise InvalidPhoneNumberException(phone)
