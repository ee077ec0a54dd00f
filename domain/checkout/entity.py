"""
Checkout domain entities - charge requests, settlements, correlations and
the records a confirmed payment turns into.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


class Purpose(str, Enum):
    """What a charge pays for."""
    CONTENT_PURCHASE = "content_purchase"
    CREATOR_ACTIVATION = "creator_activation"

    @classmethod
    def from_wire(cls, value: Any) -> Optional["Purpose"]:
        """Map the literals found in metadata, query strings and legacy rows."""
        if value is None:
            return None
        if isinstance(value, Purpose):
            return value
        v = str(value).strip().lower()
        if v in {"content_purchase", "achat_unitaire", "content", "purchase"}:
            return cls.CONTENT_PURCHASE
        if v in {"creator_activation", "activation", "creator"}:
            return cls.CREATOR_ACTIVATION
        return None


class SettlementState(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class TransactionStatus(str, Enum):
    # Only settled transactions are ever written by the checkout flow
    PAID = "paid"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Actor:
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class ChargeRequest:
    """
    One purchase attempt as sent to the gateway.

    业务规则：
    1. 金额为正整数（最小货币单位）
    2. 内容购买必须带 subject_id
    """

    actor_id: str
    actor_email: Optional[str]
    actor_display_name: Optional[str]
    amount: int
    purpose: Purpose
    subject_id: Optional[str]
    subject_title: Optional[str]
    payer_phone: Optional[str]
    return_url: str
    reference: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise DomainValidationException(
                f"Charge amount must be a positive integer: {self.amount}",
                field="amount",
            )
        if self.purpose is Purpose.CONTENT_PURCHASE and not self.subject_id:
            raise DomainValidationException(
                "Content purchase requires a subject id",
                field="subject_id",
            )
        if not self.actor_id:
            raise DomainValidationException("Charge requires an actor", field="actor_id")

    @property
    def label(self) -> str:
        if self.purpose is Purpose.CREATOR_ACTIVATION:
            return "Activation compte créateur"
        return self.subject_title or "Contenu exclusif"


@dataclass(frozen=True)
class CheckoutSession:
    """Gateway answer to an initiated charge."""
    redirect_url: str
    token: str


@dataclass(frozen=True)
class Settlement:
    """
    Settlement status derived fresh from a single poll.

    `echoed_metadata` carries the custom fields the provider sent back
    verbatim, if any; `title_hints` carries article labels it echoed.
    """

    state: SettlementState
    token: Optional[str] = None
    amount: Optional[int] = None
    reference: Optional[str] = None
    method: Optional[str] = None
    echoed_metadata: dict = field(default_factory=dict)
    title_hints: tuple = ()
    raw_payload: dict = field(default_factory=dict)

    @classmethod
    def paid(cls, *, amount: Optional[int], reference: Optional[str], raw_payload: dict, **kwargs) -> "Settlement":
        return cls(state=SettlementState.PAID, amount=amount, reference=reference, raw_payload=raw_payload, **kwargs)

    @classmethod
    def pending(cls, raw_payload: Optional[dict] = None, **kwargs) -> "Settlement":
        return cls(state=SettlementState.PENDING, raw_payload=raw_payload or {}, **kwargs)

    @classmethod
    def failed(cls, raw_payload: Optional[dict] = None, **kwargs) -> "Settlement":
        return cls(state=SettlementState.FAILED, raw_payload=raw_payload or {}, **kwargs)

    @property
    def is_paid(self) -> bool:
        return self.state is SettlementState.PAID


@dataclass(frozen=True)
class CheckoutState:
    """Ephemeral data stashed at initiation to survive the redirect round trip."""

    subject_id: Optional[str] = None
    subject_title: Optional[str] = None
    amount: Optional[int] = None
    actor_id: Optional[str] = None
    purpose: Optional[str] = None
    reference: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["CheckoutState"]:
        if not data:
            return None
        known = {k: data.get(k) for k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass(frozen=True)
class Correlation:
    """The resolved answer to "what was this payment for"."""

    purpose: Purpose
    actor_id: str
    subject_id: Optional[str] = None
    source: str = "generic"

    @property
    def is_generic(self) -> bool:
        return self.purpose is Purpose.CONTENT_PURCHASE and self.subject_id is None


@dataclass(frozen=True)
class ContentSnapshot:
    """Minimal read projection of a content row."""

    id: str
    beneficiary_id: Optional[str]
    title: str
    price: Optional[int]
    status: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Transaction:
    """Settled payment record; immutable once created."""

    id: Optional[str]
    actor_id: str
    subject_id: Optional[str]
    beneficiary_id: Optional[str]
    amount: int
    kind: Purpose
    provider_reference: Optional[str]
    status: TransactionStatus = TransactionStatus.PAID
    currency: str = "XOF"
    payment_method: str = "mobile_money"
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount is None or self.amount < 0:
            raise DomainValidationException(f"Invalid transaction amount: {self.amount}", field="amount")
        if self.created_at is None:
            self.created_at = _utcnow()


@dataclass
class Purchase:
    id: Optional[str]
    actor_id: str
    subject_id: str
    transaction_id: str
    amount_paid: int
    purchased_at: Optional[datetime] = None

    def __post_init__(self):
        if self.purchased_at is None:
            self.purchased_at = _utcnow()
