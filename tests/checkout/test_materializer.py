import pytest

from domain.checkout.entity import Correlation, Purpose, Settlement
from domain.checkout.materializer import MaterializationOutcome, PurchaseMaterializer
from domain.common.exceptions import DomainValidationException


def materializer_for(data):
    return PurchaseMaterializer(data.contents, data.transactions, data.purchases, data.actors)


def paid(amount=500, reference="FP-100"):
    return Settlement.paid(amount=amount, reference=reference, raw_payload={}, token="tok_1", method="airtel")


def buy(subject_id="c1", actor_id="u1"):
    return Correlation(Purpose.CONTENT_PURCHASE, actor_id, subject_id, "metadata")


@pytest.mark.asyncio
async def test_content_purchase_records_transaction_purchase_and_view(data, make_content):
    data.contents.add(make_content("c1", "Sunset pack", 500, creator="creator-9"))

    result = await materializer_for(data).materialize(buy(), paid())

    assert result.outcome is MaterializationOutcome.PURCHASED
    assert result.subject_id == "c1"
    assert len(data.transactions.rows) == 1
    tx = data.transactions.rows[0]
    assert tx.amount == 500
    assert tx.beneficiary_id == "creator-9"
    assert tx.kind is Purpose.CONTENT_PURCHASE
    assert tx.currency == "XOF"
    assert tx.provider_reference == "FP-100"
    assert [(p.actor_id, p.subject_id, p.transaction_id) for p in data.purchases.rows] == [("u1", "c1", tx.id)]
    assert data.contents.views["c1"] == 1


@pytest.mark.asyncio
async def test_replaying_the_same_settlement_does_not_double_record(data, make_content):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    m = materializer_for(data)

    first = await m.materialize(buy(), paid())
    second = await m.materialize(buy(), paid())

    assert first.outcome is MaterializationOutcome.PURCHASED
    assert second.outcome is MaterializationOutcome.ALREADY_PURCHASED
    assert len(data.transactions.rows) == 1
    assert len(data.purchases.rows) == 1
    assert data.contents.views["c1"] == 1


@pytest.mark.asyncio
async def test_owned_content_paid_again_records_nothing_new(data, make_content):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    m = materializer_for(data)
    await m.materialize(buy(), paid(reference="FP-1"))

    again = await m.materialize(buy(), paid(reference="FP-2"))

    assert again.outcome is MaterializationOutcome.ALREADY_PURCHASED
    assert again.transaction_id == data.purchases.rows[0].transaction_id
    assert len(data.transactions.rows) == 1


@pytest.mark.asyncio
async def test_concurrent_insert_conflict_maps_to_already_purchased(data, make_content):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    m = materializer_for(data)
    await m.materialize(buy(), paid(reference="FP-1"))
    data.purchases.hide_existing = True

    raced = await m.materialize(buy(), paid(reference="FP-2"))

    assert raced.outcome is MaterializationOutcome.ALREADY_PURCHASED
    assert len(data.purchases.rows) == 1


@pytest.mark.asyncio
async def test_view_counter_failure_does_not_change_outcome(data, make_content):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    data.contents.fail_increment = True

    result = await materializer_for(data).materialize(buy(), paid())

    assert result.outcome is MaterializationOutcome.PURCHASED
    assert len(data.purchases.rows) == 1


@pytest.mark.asyncio
async def test_missing_amount_falls_back_to_content_price(data, make_content):
    data.contents.add(make_content("c1", "Sunset pack", 750))

    await materializer_for(data).materialize(buy(), paid(amount=None))

    assert data.transactions.rows[0].amount == 750
    assert data.purchases.rows[0].amount_paid == 750


@pytest.mark.asyncio
async def test_creator_activation_sets_flag(data):
    corr = Correlation(Purpose.CREATOR_ACTIVATION, "u1", None, "metadata")

    result = await materializer_for(data).materialize(corr, paid(amount=200))

    assert result.outcome is MaterializationOutcome.ACTIVATED
    assert "u1" in data.actors.creators
    assert data.transactions.rows[0].kind is Purpose.CREATOR_ACTIVATION
    assert data.purchases.rows == []


@pytest.mark.asyncio
async def test_failed_activation_is_reported_as_paid_not_activated(data):
    data.actors.fail_update = True
    corr = Correlation(Purpose.CREATOR_ACTIVATION, "u1", None, "metadata")

    result = await materializer_for(data).materialize(corr, paid(amount=200))

    assert result.outcome is MaterializationOutcome.PAID_NOT_ACTIVATED
    assert result.is_partial
    assert result.transaction_id == data.transactions.rows[0].id
    assert "u1" not in data.actors.creators


@pytest.mark.asyncio
async def test_generic_correlation_records_transaction_only(data):
    corr = Correlation(Purpose.CONTENT_PURCHASE, "u1", None, "generic")

    result = await materializer_for(data).materialize(corr, paid())

    assert result.outcome is MaterializationOutcome.GENERIC
    assert not result.has_subject
    assert data.transactions.rows[0].subject_id is None
    assert data.purchases.rows == []


@pytest.mark.asyncio
async def test_unknown_subject_degrades_to_generic(data):
    result = await materializer_for(data).materialize(buy(subject_id="ghost"), paid())

    assert result.outcome is MaterializationOutcome.GENERIC
    assert data.purchases.rows == []
    assert len(data.transactions.rows) == 1


@pytest.mark.asyncio
async def test_unpaid_settlement_is_rejected(data):
    with pytest.raises(DomainValidationException):
        await materializer_for(data).materialize(buy(), Settlement.pending(token="tok_1"))
    assert data.transactions.rows == []
