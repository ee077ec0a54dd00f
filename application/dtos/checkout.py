"""
Checkout DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from domain.checkout.entity import Purpose


class StartCheckout(BaseModel):
    purpose: Purpose = Purpose.CONTENT_PURCHASE
    content_id: Optional[str] = None
    payer_phone: Optional[str] = None

    @field_validator("purpose", mode="before")
    @classmethod
    def _accept_wire_literals(cls, v):
        return Purpose.from_wire(v) or v

    @field_validator("payer_phone")
    @classmethod
    def _strip_phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        cleaned = re.sub(r"\s", "", v)
        return cleaned or None

    @model_validator(mode="after")
    def _content_needs_id(self):
        if self.purpose is Purpose.CONTENT_PURCHASE and not self.content_id:
            raise ValueError("content_id is required for a content purchase")
        return self


class CheckoutSessionDTO(BaseModel):
    redirect_url: str
    token: str
    reference: str


class ActionDTO(BaseModel):
    label: str
    href: str


class SettlementDTO(BaseModel):
    amount: Optional[int] = None
    reference: Optional[str] = None
    method: Optional[str] = None


class ReconciliationView(BaseModel):
    """What the return page renders: one label, one description, one action."""

    state: str
    outcome: Optional[str] = None
    label: str
    description: str
    action: ActionDTO
    subject_id: Optional[str] = None
    transaction_id: Optional[str] = None
    settlement: Optional[SettlementDTO] = None
    redirect_to: Optional[str] = None
    redirect_after_seconds: Optional[float] = None


class TransactionDTO(BaseModel):
    id: str
    amount: int
    currency: str
    kind: str
    status: str
    content_id: Optional[str] = None
    creator_id: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: Optional[datetime] = None



class PurchaseDTO(BaseModel):
    id: str
    content_id: str
    transaction_id: str
    amount_paid: int
    purchased_at: Optional[datetime] = None


