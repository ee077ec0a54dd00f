"""
Reconciliation controller - runs once per landing on the payment return URL.

State machine::

    checking -> success | pending | failed | error   (all terminal)

Every gateway and store failure is caught here and mapped to a terminal
state; nothing escapes to the caller. There is no automatic re-polling.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from application.dtos.checkout import ActionDTO, ReconciliationView, SettlementDTO
from application.ports.checkout_state import CheckoutStateStore
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.checkout.entity import Actor, CheckoutState, Correlation, Purpose, Settlement, SettlementState
from domain.checkout.materializer import MaterializationOutcome, MaterializationResult, PurchaseMaterializer
from domain.checkout.resolver import CorrelationResolver
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


class ReconciliationState(str, Enum):
    CHECKING = "checking"
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class ReconciliationResult:
    state: ReconciliationState
    settlement: Optional[Settlement] = None
    correlation: Optional[Correlation] = None
    materialization: Optional[MaterializationResult] = None
    purpose: Optional[Purpose] = None
    error_type: Optional[str] = None
    redirect_to: Optional[str] = None
    redirect_after_seconds: Optional[float] = None

    @property
    def outcome(self) -> Optional[MaterializationOutcome]:
        return self.materialization.outcome if self.materialization else None

    @property
    def subject_id(self) -> Optional[str]:
        return self.materialization.subject_id if self.materialization else None


class ReconciliationController:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        state_store: Optional[CheckoutStateStore] = None,
        *,
        purchases_path: str = "/my-purchases",
        redirect_delay_seconds: float = 3.0,
        currency: str = "XOF",
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self.state_store = state_store
        self.purchases_path = purchases_path
        self.redirect_delay_seconds = redirect_delay_seconds
        self.currency = currency

    async def reconcile(
        self,
        token: Optional[str],
        *,
        query_params: Optional[Mapping[str, Any]] = None,
        session_id: Optional[str] = None,
        current_actor: Optional[Actor] = None,
    ) -> ReconciliationResult:
        logger.info("reconciliation_state", state=ReconciliationState.CHECKING.value, token=token)
        if not token:
            logger.warning("reconciliation_missing_token")
            return self._finish(ReconciliationResult(ReconciliationState.ERROR, error_type="MissingToken"))

        checkout_state = await self._load_state(session_id)
        purpose_hint = Purpose.from_wire(checkout_state.purpose) if checkout_state else None

        try:
            settlement = await self.gateway.poll_status(token)
        except BusinessException as exc:
            logger.error("reconciliation_gateway_failed", token=token, error=exc.message, error_type=exc.error_type)
            return self._finish(ReconciliationResult(
                ReconciliationState.ERROR, purpose=purpose_hint, error_type="GatewayUnavailable",
            ))
        except Exception as exc:
            logger.exception("reconciliation_gateway_crashed", token=token, error=str(exc))
            return self._finish(ReconciliationResult(
                ReconciliationState.ERROR, purpose=purpose_hint, error_type="GatewayUnavailable",
            ))

        if settlement.state is SettlementState.PENDING:
            return self._finish(ReconciliationResult(
                ReconciliationState.PENDING, settlement=settlement, purpose=purpose_hint,
            ))
        if settlement.state is not SettlementState.PAID:
            return self._finish(ReconciliationResult(
                ReconciliationState.FAILED, settlement=settlement, purpose=purpose_hint,
            ))

        try:
            async with self._uow_factory() as uow:
                resolver = CorrelationResolver(uow.content_repository)
                correlation = await resolver.resolve(
                    settlement,
                    query_params=query_params,
                    state=checkout_state,
                    current_actor_id=current_actor.id if current_actor else None,
                )
                materializer = PurchaseMaterializer(
                    uow.content_repository,
                    uow.transaction_repository,
                    uow.purchase_repository,
                    uow.actor_repository,
                    currency=self.currency,
                )
                materialization = await materializer.materialize(correlation, settlement)
        except BusinessException as exc:
            logger.error("reconciliation_materialize_failed", token=token, error=exc.message, error_type=exc.error_type)
            return self._finish(ReconciliationResult(
                ReconciliationState.ERROR, settlement=settlement, purpose=purpose_hint, error_type=exc.error_type,
            ))
        except Exception as exc:
            logger.exception("reconciliation_store_failed", token=token, error=str(exc))
            return self._finish(ReconciliationResult(
                ReconciliationState.ERROR, settlement=settlement, purpose=purpose_hint, error_type="StoreUnavailable",
            ))

        await self._clear_state(session_id)

        redirect_to = None
        redirect_after = None
        if materialization.has_subject and not materialization.is_partial:
            redirect_to = self.purchases_path
            redirect_after = self.redirect_delay_seconds

        return self._finish(ReconciliationResult(
            ReconciliationState.SUCCESS,
            settlement=settlement,
            correlation=correlation,
            materialization=materialization,
            purpose=correlation.purpose,
            redirect_to=redirect_to,
            redirect_after_seconds=redirect_after,
        ))

    async def _load_state(self, session_id: Optional[str]) -> Optional[CheckoutState]:
        if not session_id or self.state_store is None:
            return None
        try:
            return await self.state_store.load(session_id)
        except Exception as exc:
            logger.warning("checkout_state_load_failed", session_id=session_id, error=str(exc))
            return None

    async def _clear_state(self, session_id: Optional[str]) -> None:
        if not session_id or self.state_store is None:
            return
        try:
            await self.state_store.clear(session_id)
        except Exception as exc:
            logger.warning("checkout_state_clear_failed", session_id=session_id, error=str(exc))

    def _finish(self, result: ReconciliationResult) -> ReconciliationResult:
        logger.info(
            "reconciliation_state",
            state=result.state.value,
            outcome=result.outcome.value if result.outcome else None,
            subject_id=result.subject_id,
            error_type=result.error_type,
        )
        return result


def build_view(
    result: ReconciliationResult,
    *,
    home_path: str = "/",
    purchases_path: str = "/my-purchases",
    dashboard_path: str = "/dashboard",
    retry_content_path: str = "/explore",
    retry_activation_path: str = "/become-creator",
) -> ReconciliationView:
    """Pair every terminal state with a label, a description and one action."""
    retry_path = retry_activation_path if result.purpose is Purpose.CREATOR_ACTIVATION else retry_content_path
    home = ActionDTO(label="Back to home", href=home_path)
    retry = ActionDTO(label="Retry payment", href=retry_path)

    if result.state is ReconciliationState.SUCCESS:
        outcome = result.outcome
        if outcome is MaterializationOutcome.PAID_NOT_ACTIVATED:
            label = "Payment received, activation pending"
            description = (
                "Your payment went through but we could not activate your creator account. "
                "Our team will contact you to finish the activation."
            )
            action = home
        elif outcome is MaterializationOutcome.ACTIVATED:
            label = "Payment successful"
            description = "Your creator account is active. You can now publish and monetize content."
            action = ActionDTO(label="Go to dashboard", href=dashboard_path)
        elif outcome is MaterializationOutcome.ALREADY_PURCHASED:
            label = "Already unlocked"
            description = "You already have access to this content."
            action = ActionDTO(label="View my purchases", href=purchases_path)
        elif outcome is MaterializationOutcome.PURCHASED:
            label = "Payment successful"
            description = "Your payment was processed and the content is unlocked."
            action = ActionDTO(label="View my purchases", href=purchases_path)
        else:
            label = "Payment successful"
            description = "Your payment was processed successfully."
            action = home
    elif result.state is ReconciliationState.PENDING:
        label = "Payment in progress"
        description = "Your payment is still being processed. You will get a confirmation once it completes."
        action = home
    elif result.state is ReconciliationState.FAILED:
        label = "Payment failed"
        description = "Your payment could not be processed. Please try again or contact support."
        action = retry
    else:
        label = "Could not verify payment"
        description = "Something went wrong while verifying your payment."
        action = retry

    settlement = None
    if result.settlement is not None and result.settlement.is_paid:
        settlement = SettlementDTO(
            amount=result.settlement.amount,
            reference=result.settlement.reference,
            method=result.settlement.method,
        )

    return ReconciliationView(
        state=result.state.value,
        outcome=result.outcome.value if result.outcome else None,
        label=label,
        description=description,
        action=action,
        subject_id=result.subject_id,
        transaction_id=result.materialization.transaction_id if result.materialization else None,
        settlement=settlement,
        redirect_to=result.redirect_to,
        redirect_after_seconds=result.redirect_after_seconds,
    )
