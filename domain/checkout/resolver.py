"""
Correlation resolver - recovers what a settled payment was for.

Sources are consulted in a fixed priority order and the first one that
pins down the purpose/subject wins:

1. metadata echoed back by the provider in the settlement payload
2. query parameters on the return URL
3. ephemeral checkout state stashed at initiation
4. content title + exact price heuristic
5. content price heuristic, newest first
6. generic transaction (no subject)

The heuristics are plain functions over candidate snapshots so they can be
exercised without a data store.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

import structlog

from domain.common.exceptions import UnresolvedActorException
from .entity import CheckoutState, ContentSnapshot, Correlation, Purpose, Settlement
from .repository import ContentRepository


logger = structlog.get_logger(__name__)

_ACTOR_KEYS = ("userId", "user_id", "actorId", "actor_id")
_PURPOSE_KEYS = ("type", "purpose")
_SUBJECT_KEYS = ("contentId", "content_id", "subjectId", "subject_id")
_TITLE_KEYS = ("contentTitle", "content_title", "subjectTitle", "subject_title", "title")
_AMOUNT_KEYS = ("amount", "Montant")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class MatchOutcome(str, Enum):
    FOUND = "found"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Match:
    outcome: MatchOutcome
    content: Optional[ContentSnapshot] = None

    @classmethod
    def found(cls, content: ContentSnapshot) -> "Match":
        return cls(MatchOutcome.FOUND, content)

    @classmethod
    def ambiguous(cls) -> "Match":
        return cls(MatchOutcome.AMBIGUOUS)

    @classmethod
    def not_found(cls) -> "Match":
        return cls(MatchOutcome.NOT_FOUND)


def match_by_title_and_price(candidates: Sequence[ContentSnapshot], amount: Optional[int]) -> Match:
    """A single title hit is accepted; several hits must be narrowed to one by price."""
    if not candidates:
        return Match.not_found()
    if len(candidates) == 1:
        return Match.found(candidates[0])
    if amount is None:
        return Match.ambiguous()
    priced = [c for c in candidates if c.price == amount]
    if len(priced) == 1:
        return Match.found(priced[0])
    return Match.ambiguous() if priced else Match.not_found()


def match_newest_by_price(candidates: Sequence[ContentSnapshot], amount: Optional[int]) -> Match:
    if amount is None:
        return Match.not_found()
    priced = [c for c in candidates if c.price == amount]
    if not priced:
        return Match.not_found()
    return Match.found(max(priced, key=lambda c: c.created_at or _EPOCH))


def _first(data: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def _to_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class CorrelationHints:
    """What a single source knows about the payment."""

    source: str
    actor_id: Optional[str] = None
    purpose: Optional[Purpose] = None
    subject_id: Optional[str] = None
    subject_title: Optional[str] = None
    amount: Optional[int] = None

    @classmethod
    def from_mapping(cls, source: str, data: Optional[Mapping[str, Any]]) -> "CorrelationHints":
        if not data:
            return cls(source=source)
        return cls(
            source=source,
            actor_id=_first(data, _ACTOR_KEYS),
            purpose=Purpose.from_wire(_first(data, _PURPOSE_KEYS)),
            subject_id=_first(data, _SUBJECT_KEYS),
            subject_title=_first(data, _TITLE_KEYS),
            amount=_to_int(_first(data, _AMOUNT_KEYS)),
        )

    @classmethod
    def from_state(cls, state: Optional[CheckoutState]) -> "CorrelationHints":
        if state is None:
            return cls(source="session")
        return cls(
            source="session",
            actor_id=state.actor_id,
            purpose=Purpose.from_wire(state.purpose),
            subject_id=state.subject_id,
            subject_title=state.subject_title,
            amount=state.amount,
        )

    def correlate(self, actor_id: str) -> Optional[Correlation]:
        if self.purpose is Purpose.CREATOR_ACTIVATION:
            return Correlation(Purpose.CREATOR_ACTIVATION, actor_id, None, self.source)
        if self.subject_id:
            return Correlation(Purpose.CONTENT_PURCHASE, actor_id, self.subject_id, self.source)
        return None


class CorrelationResolver:
    """领域服务：把一笔已结算的支付映射回购买/激活意图"""

    def __init__(self, content_repository: ContentRepository, *, candidate_limit: int = 20):
        self.content_repository = content_repository
        self.candidate_limit = candidate_limit

    async def resolve(
        self,
        settlement: Settlement,
        *,
        query_params: Optional[Mapping[str, Any]] = None,
        state: Optional[CheckoutState] = None,
        current_actor_id: Optional[str] = None,
    ) -> Correlation:
        """
        Raises:
            UnresolvedActorException: no source carries a payer id
        """
        sources = [
            CorrelationHints.from_mapping("metadata", settlement.echoed_metadata),
            CorrelationHints.from_mapping("query", query_params),
            CorrelationHints.from_state(state),
        ]

        actor_id = next((h.actor_id for h in sources if h.actor_id), None) or current_actor_id
        if not actor_id:
            raise UnresolvedActorException(settlement.token)

        for hints in sources:
            correlation = hints.correlate(actor_id)
            if correlation is not None:
                logger.info(
                    "correlation_resolved",
                    source=correlation.source,
                    purpose=correlation.purpose.value,
                    subject_id=correlation.subject_id,
                )
                return correlation

        amount = settlement.amount
        if amount is None:
            amount = next((h.amount for h in sources if h.amount is not None), None)
        title = next((h.subject_title for h in sources if h.subject_title), None)
        if not title and settlement.title_hints:
            title = settlement.title_hints[0]

        if title:
            candidates = await self.content_repository.search_by_title(title, limit=self.candidate_limit)
            match = match_by_title_and_price(candidates, amount)
            logger.info("correlation_title_match", title=title, amount=amount, outcome=match.outcome.value)
            if match.outcome is MatchOutcome.FOUND:
                return Correlation(Purpose.CONTENT_PURCHASE, actor_id, match.content.id, "title_price")

        if amount is not None:
            candidates = await self.content_repository.list_by_price(amount, limit=self.candidate_limit)
            match = match_newest_by_price(candidates, amount)
            logger.info("correlation_price_match", amount=amount, outcome=match.outcome.value)
            if match.outcome is MatchOutcome.FOUND:
                return Correlation(Purpose.CONTENT_PURCHASE, actor_id, match.content.id, "price")

        logger.warning(
            "correlation_degraded_to_generic",
            token=settlement.token,
            reference=settlement.reference,
            amount=amount,
        )
        return Correlation(Purpose.CONTENT_PURCHASE, actor_id, None, "generic")
