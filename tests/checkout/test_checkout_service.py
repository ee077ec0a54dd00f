import re

import pytest

from application.dtos.checkout import StartCheckout
from application.services.checkout_service import CheckoutApplicationService, generate_payment_reference
from domain.checkout.entity import Actor, Purchase, Purpose
from domain.common.exceptions import (
    AlreadyCreatorException,
    AlreadyPurchasedException,
    ContentNotFoundException,
    InvalidPhoneNumberException,
)
from infrastructure.external.payments.exceptions import PaymentRedirectMissingError


ACTOR = Actor(id="u1", email="u1@example.com", display_name="Ama")
PHONE_PATTERN = r"^(074|077|076)[0-9]{6}$"


def service_for(data, gateway, state_store):
    return CheckoutApplicationService(
        gateway,
        data.uow_factory,
        state_store,
        return_url="https://app.example/payment-callback",
        activation_amount=200,
        phone_pattern=PHONE_PATTERN,
    )


def test_reference_format():
    ref = generate_payment_reference(Purpose.CREATOR_ACTIVATION, "abc")
    assert re.fullmatch(r"CREATOR_ACTIVATION_ABC_\d{13}_[0-9A-F]{6}", ref)


def test_start_checkout_payload_strips_phone_and_needs_content():
    payload = StartCheckout(purpose="achat_unitaire", content_id="c1", payer_phone="074 12 34 56")
    assert payload.purpose is Purpose.CONTENT_PURCHASE
    assert payload.payer_phone == "074123456"
    with pytest.raises(ValueError):
        StartCheckout(purpose="content_purchase")


@pytest.mark.asyncio
async def test_content_checkout_stashes_state_and_initiates(data, make_content, make_gateway, state_store):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    gateway = make_gateway()

    session = await service_for(data, gateway, state_store).start_checkout(
        ACTOR, StartCheckout(content_id="c1", payer_phone="074123456"), "sid"
    )

    assert session.redirect_url.startswith("https://pay.example/")
    assert session.reference.startswith("CONTENT_PURCHASE_U1_")
    charge = gateway.initiated[0]
    assert charge.amount == 500
    assert charge.subject_title == "Sunset pack"
    assert charge.return_url == "https://app.example/payment-callback"
    state = await state_store.load("sid")
    assert (state.subject_id, state.actor_id, state.amount, state.purpose) == ("c1", "u1", 500, "content_purchase")


@pytest.mark.asyncio
async def test_activation_checkout_charges_the_fee(data, make_gateway, state_store):
    gateway = make_gateway()

    await service_for(data, gateway, state_store).start_checkout(
        ACTOR, StartCheckout(purpose="creator_activation"), "sid"
    )

    assert gateway.initiated[0].amount == 200
    assert gateway.initiated[0].purpose is Purpose.CREATOR_ACTIVATION


@pytest.mark.asyncio
async def test_checkout_refusals(data, make_content, make_gateway, state_store):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    data.purchases.rows.append(Purchase(id="p1", actor_id="u1", subject_id="c1", transaction_id="t1", amount_paid=500))
    data.actors.creators.add("u1")
    svc = service_for(data, make_gateway(), state_store)

    with pytest.raises(ContentNotFoundException):
        await svc.start_checkout(ACTOR, StartCheckout(content_id="missing"), "sid")
    with pytest.raises(AlreadyPurchasedException):
        await svc.start_checkout(ACTOR, StartCheckout(content_id="c1"), "sid")
    with pytest.raises(AlreadyCreatorException):
        await svc.start_checkout(ACTOR, StartCheckout(purpose="creator_activation"), "sid")
    with pytest.raises(InvalidPhoneNumberException):
        await svc.start_checkout(ACTOR, StartCheckout(purpose="creator_activation", payer_phone="0611"), "sid")
    assert await state_store.load("sid") is None


@pytest.mark.asyncio
async def test_failed_initiation_clears_stashed_state(data, make_content, make_gateway, state_store):
    data.contents.add(make_content("c1", "Sunset pack", 500))
    gateway = make_gateway(error=PaymentRedirectMissingError(provider="stub"))

    with pytest.raises(PaymentRedirectMissingError):
        await service_for(data, gateway, state_store).start_checkout(ACTOR, StartCheckout(content_id="c1"), "sid")

    assert await state_store.load("sid") is None


@pytest.mark.asyncio
async def test_history_listings(data, make_content, make_gateway, state_store):
    from domain.checkout.entity import Correlation, Settlement
    from domain.checkout.materializer import PurchaseMaterializer

    data.contents.add(make_content("c1", "Sunset pack", 500))
    await PurchaseMaterializer(data.contents, data.transactions, data.purchases, data.actors).materialize(
        Correlation(Purpose.CONTENT_PURCHASE, "u1", "c1"),
        Settlement.paid(amount=500, reference="FP-9", raw_payload={}),
    )
    svc = service_for(data, make_gateway(), state_store)

    txs = await svc.list_transactions("u1")
    purchases = await svc.list_purchases("u1")

    assert [(t.amount, t.kind, t.payment_reference, t.content_id) for t in txs] == [
        (500, "content_purchase", "FP-9", "c1")
    ]
    assert purchases[0].content_id == "c1"
    assert await svc.list_transactions("someone-else") == []
