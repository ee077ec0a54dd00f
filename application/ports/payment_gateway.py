"""
Payment gateway port.

The checkout service and the reconciliation controller only see this
Protocol; provider adapters live under infrastructure/external/payments.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from domain.checkout.entity import ChargeRequest, CheckoutSession, Settlement


@runtime_checkable
class PaymentGateway(Protocol):
    provider: str

    async def initiate(self, req: ChargeRequest) -> CheckoutSession:
        """Open a hosted checkout; correlation metadata must be echoed back by the provider."""
        ...

    async def poll_status(self, token: str) -> Settlement:
        """Authoritative settlement lookup. Never trust a callback body instead."""
        ...

    def build_redirect(self, url: str) -> Any: ...

    async def aclose(self) -> None: ...
