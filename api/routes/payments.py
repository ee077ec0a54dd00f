"""
Payments API routes.

Checkout initiation, the browser return URL, the provider webhook and the
payer's history. Keep this thin: no provider wire details here.
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.dependencies import (
    get_checkout_service,
    get_current_actor,
    get_optional_actor,
    get_reconciliation_controller,
)
from application.dtos.checkout import StartCheckout
from application.services.checkout_service import CheckoutApplicationService
from application.services.reconciliation_service import ReconciliationController, build_view
from core.config import settings
from core.logging_config import get_logger
from core.response import success_response
from domain.checkout.entity import Actor


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)

_WEBHOOK_TOKEN_KEYS = ("tokenPay", "token")


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        settings.checkout.session_cookie,
        session_id,
        max_age=settings.checkout.state_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=not settings.DEBUG,
    )


@router.post("/checkout")
async def start_checkout(
    payload: StartCheckout,
    request: Request,
    response: Response,
    redirect: bool = Query(False, description="303 straight to the provider checkout page"),
    actor: Actor = Depends(get_current_actor),
    service: CheckoutApplicationService = Depends(get_checkout_service),
):
    session_id = request.cookies.get(settings.checkout.session_cookie) or uuid.uuid4().hex
    session = await service.start_checkout(actor, payload, session_id)
    if redirect:
        redirect_response = service.gateway.build_redirect(session.redirect_url)
        _set_session_cookie(redirect_response, session_id)
        return redirect_response
    _set_session_cookie(response, session_id)
    return success_response(data=session.model_dump())


@router.get("/callback")
async def payment_callback(
    request: Request,
    token: Optional[str] = Query(None),
    actor: Optional[Actor] = Depends(get_optional_actor),
    controller: ReconciliationController = Depends(get_reconciliation_controller),
):
    result = await controller.reconcile(
        token,
        query_params=dict(request.query_params),
        session_id=request.cookies.get(settings.checkout.session_cookie),
        current_actor=actor,
    )
    view = build_view(
        result,
        home_path=settings.checkout.home_path,
        purchases_path=settings.checkout.purchases_path,
        dashboard_path=settings.checkout.dashboard_path,
        retry_content_path=settings.checkout.retry_content_path,
        retry_activation_path=settings.checkout.retry_activation_path,
    )
    return success_response(data=view.model_dump(mode="json"), message=view.label)


@router.post("/webhooks/fusionpay")
async def fusionpay_webhook(
    request: Request,
    controller: ReconciliationController = Depends(get_reconciliation_controller),
):
    """
    Provider notification. The body is only used to find the token; the
    settlement itself is always re-polled. Always answers 200 so the
    provider does not retry on our business outcomes.
    """
    try:
        body = await request.json()
    except ValueError:
        body = None
    token = None
    if isinstance(body, dict):
        token = next((str(body[k]) for k in _WEBHOOK_TOKEN_KEYS if body.get(k)), None)
    if not token:
        logger.warning("fusionpay_webhook_without_token")
        return success_response(message="ignored")

    result = await controller.reconcile(token)
    logger.info(
        "fusionpay_webhook_processed",
        token=token,
        state=result.state.value,
        outcome=result.outcome.value if result.outcome else None,
    )
    return success_response(data={
        "state": result.state.value,
        "outcome": result.outcome.value if result.outcome else None,
    })


@router.get("/transactions")
async def list_transactions(
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    service: CheckoutApplicationService = Depends(get_checkout_service),
):
    items = await service.list_transactions(actor.id, limit=limit)
    return success_response(data=[i.model_dump(mode="json") for i in items])


@router.get("/purchases")
async def list_purchases(
    actor: Actor = Depends(get_current_actor),
    service: CheckoutApplicationService = Depends(get_checkout_service),
):
    items = await service.list_purchases(actor.id)
    return success_response(data=[i.model_dump(mode="json") for i in items])
