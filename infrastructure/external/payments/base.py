"""
Shared plumbing for payment gateway adapters: one pooled httpx client,
tenacity retries on transport failures, JSON decoding and the mapping of
HTTP-level failures onto payment exceptions.

Adapters subclass and implement ``initiate`` / ``poll_status``.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

import httpx
from starlette.responses import RedirectResponse
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.checkout.entity import ChargeRequest, CheckoutSession, Settlement, SettlementState
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentTimeoutError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

_TRANSIENT = (httpx.TimeoutException, httpx.TransportError)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 2.0, "read": 5.0, "write": 5.0, "total": 8.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        # 测试注入 httpx.MockTransport
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        cfg = self._timeouts_cfg
        return httpx.Timeout(cfg["total"], connect=cfg["connect"], read=cfg["read"], write=cfg["write"])

    @asynccontextmanager
    async def client(self):
        # 连接池在进程内复用，由 aclose() 统一关闭
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        yield self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], max=2.0),
            retry=retry_if_exception_type(_TRANSIENT),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request_json(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        """
        Send a request and return the decoded JSON object.

        Transport failures that outlive the retry budget become
        PaymentRecoverableError, and running past the total timeout becomes
        PaymentTimeoutError; HTTP error statuses and bodies that are not a
        JSON object become PaymentProviderError.
        """
        async with self.client() as c:
            async def do_call():
                resp = await c.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp.json()

            total = self._timeouts_cfg["total"]
            try:
                # total 限制整次调用（含重试与退避），而不是单次请求
                data = await asyncio.wait_for(self._retry(do_call), timeout=total)
            except asyncio.TimeoutError:
                logger.warning("payment_provider_timeout", provider=self.provider, url=url, total=total)
                raise PaymentTimeoutError(f"no answer within {total}s", provider=self.provider)
            except _TRANSIENT as e:
                logger.warning("payment_provider_unreachable", provider=self.provider, url=url, error=str(e))
                raise PaymentRecoverableError(str(e) or "network error", provider=self.provider)
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning("payment_provider_http_error", provider=self.provider, url=url, status=status)
                raise PaymentProviderError(f"HTTP {status}", provider=self.provider, provider_code=str(status))
            except ValueError as e:
                raise PaymentProviderError(f"invalid response body: {e}", provider=self.provider)
        if not isinstance(data, dict):
            raise PaymentProviderError("unexpected response shape", provider=self.provider)
        return data

    async def initiate(self, req: ChargeRequest) -> CheckoutSession:  # type: ignore[override]
        raise NotImplementedError

    async def poll_status(self, token: str) -> Settlement:  # type: ignore[override]
        raise NotImplementedError

    def build_redirect(self, url: str) -> RedirectResponse:
        """303 so the browser follows with GET whatever the initiating method was."""
        return RedirectResponse(url=url, status_code=303)

    def _map_status(self, provider_status: Any) -> SettlementState:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        internal = mapping.get(str(provider_status or "").strip().lower())
        # 未登记的渠道状态一律视为失败
        return SettlementState(internal) if internal else SettlementState.FAILED

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)
