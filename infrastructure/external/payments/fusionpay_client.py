"""
FusionPay (MoneyFusion) mobile-money adapter over plain HTTPS/JSON.

Wire notes:
- Initiation is a POST of the whole order to the merchant pay URL; the
  answer carries a checkout `url` and a `token`.
- Status is a GET on `{status_url}/{token}`. Only a truthy top-level
  `statut` together with `data.statut == "paid"` counts as settled.
- `personal_Info` is echoed back verbatim, so correlation fields placed
  there at initiation come back in `Settlement.echoed_metadata`.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from domain.checkout.entity import ChargeRequest, CheckoutSession, Purpose, Settlement, SettlementState
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRedirectMissingError,
)
from core.settings import FusionPaySettings, payment_settings


def _to_amount(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class FusionPayClient(BasePaymentClient):
    provider = "fusionpay"

    def __init__(
        self,
        config: Optional[FusionPaySettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self.config = config or payment_settings.fusionpay

    def _build_body(self, req: ChargeRequest) -> dict[str, Any]:
        info: dict[str, Any] = {
            "userId": req.actor_id,
            "userEmail": req.actor_email,
            "userName": req.actor_display_name,
            "type": req.purpose.value,
            "reference": req.reference,
        }
        if req.purpose is Purpose.CONTENT_PURCHASE:
            info["contentId"] = req.subject_id
            info["contentTitle"] = req.subject_title
        return {
            "totalPrice": req.amount,
            "article": [{req.label: req.amount}],
            "personal_Info": [{k: v for k, v in info.items() if v is not None}],
            "numeroSend": req.payer_phone or self.config.default_phone,
            "nomclient": req.actor_display_name or req.actor_email or req.actor_id,
            "return_url": req.return_url or self.config.return_url,
            "webhook_url": self.config.webhook_url,
        }

    async def initiate(self, req: ChargeRequest) -> CheckoutSession:  # type: ignore[override]
        body = self._build_body(req)
        self._log("fusionpay_initiate", reference=req.reference, amount=req.amount, purpose=req.purpose.value)
        data = await self._request_json("POST", self.config.api_url, json=body)

        if data.get("statut") is False:
            raise PaymentProviderError(
                str(data.get("message") or "payment initiation refused"),
                provider=self.provider,
            )
        token = data.get("token")
        url = data.get("url")
        if not url:
            raise PaymentRedirectMissingError(provider=self.provider, token=token)
        if not token:
            raise PaymentProviderError("payment token missing from response", provider=self.provider)
        self._log("fusionpay_initiated", reference=req.reference, token=token)
        return CheckoutSession(redirect_url=str(url), token=str(token))

    async def poll_status(self, token: str) -> Settlement:  # type: ignore[override]
        url = f"{self.config.status_url.rstrip('/')}/{token}"
        data = await self._request_json("GET", url)
        return self.parse_status(token, data)

    def parse_status(self, token: str, data: dict[str, Any]) -> Settlement:
        """Map a status payload onto a Settlement; unknown shapes count as failed."""
        inner = data.get("data") if isinstance(data.get("data"), dict) else {}
        state = self._map_status(inner.get("statut")) if data.get("statut") else SettlementState.FAILED
        self._log("fusionpay_status", token=token, provider_status=inner.get("statut"), state=state.value)

        if state is SettlementState.PENDING:
            return Settlement.pending(raw_payload=data, token=token)
        if state is not SettlementState.PAID:
            return Settlement.failed(raw_payload=data, token=token)

        infos = inner.get("personal_Info") or []
        metadata = infos[0] if infos and isinstance(infos[0], dict) else {}
        titles: list[str] = []
        for article in inner.get("article") or []:
            if isinstance(article, dict):
                titles.extend(str(k) for k in article.keys())

        return Settlement.paid(
            amount=_to_amount(inner.get("Montant")),
            # 渠道流水号缺失时退回支付 token，保证重复轮询得到同一引用
            reference=str(inner.get("numeroTransaction") or inner.get("tokenPay") or token),
            raw_payload=data,
            token=token,
            method=inner.get("moyen"),
            echoed_metadata=dict(metadata),
            title_hints=tuple(titles),
        )
