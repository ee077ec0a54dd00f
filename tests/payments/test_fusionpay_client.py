import asyncio
import json

import httpx
import pytest

from core.settings import FusionPaySettings
from domain.checkout.entity import ChargeRequest, Purpose, SettlementState
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentRedirectMissingError,
    PaymentTimeoutError,
)
from infrastructure.external.payments.fusionpay_client import FusionPayClient


CONFIG = FusionPaySettings(
    api_url="https://fusion.test/pay/",
    status_url="https://fusion.test/paiementNotif",
    return_url="https://app.test/payment-callback",
    webhook_url="https://api.test/webhook",
)


def client_with(handler) -> FusionPayClient:
    return FusionPayClient(CONFIG, transport=httpx.MockTransport(handler))


def charge(**overrides):
    values = dict(
        actor_id="u1",
        actor_email="u1@example.com",
        actor_display_name="Ama",
        amount=500,
        purpose=Purpose.CONTENT_PURCHASE,
        subject_id="c1",
        subject_title="Sunset pack",
        payer_phone=None,
        return_url="https://app.test/payment-callback",
        reference="CONTENT_PURCHASE_U1_1_ABC",
    )
    values.update(overrides)
    return ChargeRequest(**values)


@pytest.mark.asyncio
async def test_initiate_sends_order_with_correlation_metadata():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"statut": True, "token": "tok_1", "url": "https://fusion.test/c/tok_1"})

    session = await client_with(handler).initiate(charge())

    assert session.token == "tok_1"
    assert session.redirect_url == "https://fusion.test/c/tok_1"
    body = seen["body"]
    assert seen["method"] == "POST" and seen["url"] == "https://fusion.test/pay/"
    assert body["totalPrice"] == 500
    assert body["article"] == [{"Sunset pack": 500}]
    assert body["numeroSend"] == "00000000"
    assert body["webhook_url"] == "https://api.test/webhook"
    info = body["personal_Info"][0]
    assert info["userId"] == "u1"
    assert info["type"] == "content_purchase"
    assert info["contentId"] == "c1"
    assert info["contentTitle"] == "Sunset pack"


@pytest.mark.asyncio
async def test_initiate_without_checkout_url_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"statut": True, "token": "tok_1", "message": "ok"})

    with pytest.raises(PaymentRedirectMissingError):
        await client_with(handler).initiate(charge())


@pytest.mark.asyncio
async def test_initiate_refusal_raises_provider_error():
    def handler(request):
        return httpx.Response(200, json={"statut": False, "message": "numero invalide"})

    with pytest.raises(PaymentProviderError):
        await client_with(handler).initiate(charge())


@pytest.mark.asyncio
async def test_poll_paid_extracts_amount_reference_and_metadata():
    def handler(request):
        assert str(request.url) == "https://fusion.test/paiementNotif/tok_1"
        return httpx.Response(200, json={
            "statut": True,
            "data": {
                "statut": "paid",
                "Montant": "500",
                "numeroTransaction": "MF123",
                "moyen": "airtel",
                "tokenPay": "tok_1",
                "personal_Info": [{"userId": "u1", "type": "content_purchase", "contentId": "c1"}],
            },
        })

    settlement = await client_with(handler).poll_status("tok_1")

    assert settlement.state is SettlementState.PAID
    assert settlement.amount == 500
    assert settlement.reference == "MF123"
    assert settlement.method == "airtel"
    assert settlement.echoed_metadata["contentId"] == "c1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"statut": True, "data": {"statut": "pending"}}, SettlementState.PENDING),
        ({"statut": True, "data": {"statut": "failure"}}, SettlementState.FAILED),
        ({"statut": False, "data": {"statut": "paid"}}, SettlementState.FAILED),
        ({"statut": True}, SettlementState.FAILED),
    ],
)
async def test_only_confirmed_paid_status_counts_as_paid(payload, expected):
    settlement = await client_with(lambda request: httpx.Response(200, json=payload)).poll_status("tok_1")
    assert settlement.state is expected


@pytest.mark.asyncio
async def test_poll_http_error_and_bad_body_raise_provider_error():
    with pytest.raises(PaymentProviderError):
        await client_with(lambda request: httpx.Response(500, text="oops")).poll_status("tok_1")
    with pytest.raises(PaymentProviderError):
        await client_with(lambda request: httpx.Response(200, text="<html>")).poll_status("tok_1")


@pytest.mark.asyncio
async def test_network_failure_is_retried_then_reported():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        raise httpx.ConnectError("unreachable", request=request)

    client = client_with(handler)
    client._retry_cfg = {"max": 1, "base": 0.0}

    with pytest.raises(PaymentRecoverableError):
        await client.poll_status("tok_1")
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_total_timeout_bounds_poll_across_retries():
    calls = {"n": 0}

    async def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ReadTimeout("slow", request=request)
        await asyncio.sleep(5)
        return httpx.Response(200, json={"statut": True, "data": {"statut": "paid"}})

    client = client_with(handler)
    client._timeouts_cfg = {"connect": 1.0, "read": 1.0, "write": 1.0, "total": 0.2}
    client._retry_cfg = {"max": 3, "base": 0.0}

    with pytest.raises(PaymentTimeoutError) as exc_info:
        await client.poll_status("tok_1")
    assert calls["n"] == 2
    assert exc_info.value.code == 60003
    # 仍属于可恢复错误，调用方按“稍后重试”处理
    assert isinstance(exc_info.value, PaymentRecoverableError)


def test_build_redirect_is_see_other():
    response = FusionPayClient(CONFIG).build_redirect("https://fusion.test/c/tok_1")
    assert response.status_code == 303
    assert response.headers["location"] == "https://fusion.test/c/tok_1"
