import pytest

from application.services.reconciliation_service import (
    ReconciliationController,
    ReconciliationState,
    build_view,
)
from domain.checkout.entity import CheckoutState, Settlement
from domain.checkout.materializer import MaterializationOutcome
from infrastructure.external.payments.exceptions import PaymentProviderError


def paid(metadata=None, amount=500, reference="FP-1"):
    return Settlement.paid(
        amount=amount,
        reference=reference,
        raw_payload={},
        token="tok_1",
        method="airtel",
        echoed_metadata=metadata or {},
    )


def controller_for(data, gateway, state_store=None):
    return ReconciliationController(gateway, data.uow_factory, state_store, purchases_path="/my-purchases")


@pytest.mark.asyncio
async def test_paid_content_purchase_succeeds_and_redirects(data, make_content, make_gateway, state_store):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    gateway = make_gateway(paid({"userId": "u1", "type": "content_purchase", "contentId": "c1"}))
    await state_store.save("sid", CheckoutState(subject_id="c1", actor_id="u1", purpose="content_purchase"))

    result = await controller_for(data, gateway, state_store).reconcile("tok_1", session_id="sid")

    assert result.state is ReconciliationState.SUCCESS
    assert result.outcome is MaterializationOutcome.PURCHASED
    assert result.redirect_to == "/my-purchases"
    assert result.redirect_after_seconds == 3.0
    assert len(data.purchases.rows) == 1
    assert data.commits == 1
    assert await state_store.load("sid") is None


@pytest.mark.asyncio
async def test_missing_token_is_an_error_without_polling(data, make_gateway):
    gateway = make_gateway(paid())

    result = await controller_for(data, gateway).reconcile(None)

    assert result.state is ReconciliationState.ERROR
    assert gateway.polled == []
    assert data.transactions.rows == []


@pytest.mark.asyncio
async def test_pending_and_failed_settlements_record_nothing(data, make_gateway):
    pending = await controller_for(data, make_gateway(Settlement.pending(token="t"))).reconcile("t")
    failed = await controller_for(data, make_gateway(Settlement.failed(token="t"))).reconcile("t")

    assert pending.state is ReconciliationState.PENDING
    assert failed.state is ReconciliationState.FAILED
    assert data.transactions.rows == []
    assert data.commits == 0


@pytest.mark.asyncio
async def test_gateway_errors_end_in_error_state(data, make_gateway):
    provider_down = make_gateway(error=PaymentProviderError("HTTP 502", provider="fusionpay"))
    crashed = make_gateway(error=RuntimeError("boom"))

    first = await controller_for(data, provider_down).reconcile("tok_1")
    second = await controller_for(data, crashed).reconcile("tok_1")

    assert first.state is ReconciliationState.ERROR
    assert second.state is ReconciliationState.ERROR
    assert data.transactions.rows == []


@pytest.mark.asyncio
async def test_session_state_recovers_purchase_when_nothing_is_echoed(data, make_content, make_gateway, state_store):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    await state_store.save(
        "sid",
        CheckoutState(subject_id="c1", subject_title="Sunset pack", amount=500, actor_id="u7",
                      purpose="content_purchase"),
    )

    result = await controller_for(data, make_gateway(paid({})), state_store).reconcile(
        "tok_1", query_params={"token": "tok_1"}, session_id="sid"
    )

    assert result.outcome is MaterializationOutcome.PURCHASED
    assert data.purchases.rows[0].actor_id == "u7"
    assert result.correlation.source == "session"
    assert await state_store.load("sid") is None


@pytest.mark.asyncio
async def test_activation_failure_is_partial_success(data, make_gateway):
    data.actors.fail_update = True
    gateway = make_gateway(paid({"userId": "u1", "type": "creator_activation"}, amount=200))

    result = await controller_for(data, gateway).reconcile("tok_1")
    view = build_view(result)

    assert result.state is ReconciliationState.SUCCESS
    assert result.outcome is MaterializationOutcome.PAID_NOT_ACTIVATED
    assert result.redirect_to is None
    assert view.outcome == "paid_not_activated"
    assert view.label == "Payment received, activation pending"
    assert len(data.transactions.rows) == 1


@pytest.mark.asyncio
async def test_unresolved_actor_is_an_error_and_keeps_state(data, make_gateway, state_store):
    await state_store.save("sid", CheckoutState(subject_id="c1", purpose="content_purchase"))

    result = await controller_for(data, make_gateway(paid({})), state_store).reconcile("tok_1", session_id="sid")

    assert result.state is ReconciliationState.ERROR
    assert result.error_type == "UnresolvedActor"
    assert data.transactions.rows == []
    assert await state_store.load("sid") is not None


@pytest.mark.asyncio
async def test_generic_success_does_not_auto_navigate(data, make_gateway):
    result = await controller_for(data, make_gateway(paid({"userId": "u1"}))).reconcile("tok_1")

    assert result.state is ReconciliationState.SUCCESS
    assert result.outcome is MaterializationOutcome.GENERIC
    assert result.redirect_to is None


@pytest.mark.asyncio
async def test_failed_view_offers_retry_matching_purpose(data, make_gateway, state_store):
    await state_store.save("sid", CheckoutState(actor_id="u1", purpose="creator_activation"))

    result = await controller_for(data, make_gateway(Settlement.failed(token="t")), state_store).reconcile(
        "t", session_id="sid"
    )
    view = build_view(result, retry_activation_path="/become-creator")

    assert view.state == "failed"
    assert view.action.label == "Retry payment"
    assert view.action.href == "/become-creator"
    assert view.settlement is None


def test_success_view_exposes_settlement_summary():
    from application.services.reconciliation_service import ReconciliationResult
    from domain.checkout.materializer import MaterializationResult

    result = ReconciliationResult(
        ReconciliationState.SUCCESS,
        settlement=paid(),
        materialization=MaterializationResult(MaterializationOutcome.PURCHASED, subject_id="c1", transaction_id="tx-1"),
        redirect_to="/my-purchases",
        redirect_after_seconds=3.0,
    )
    view = build_view(result)

    assert view.action.href == "/my-purchases"
    assert view.settlement.amount == 500
    assert view.settlement.reference == "FP-1"
    assert view.transaction_id == "tx-1"
