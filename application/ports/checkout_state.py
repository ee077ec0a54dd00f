"""
Ephemeral checkout state port.

A narrow, session-scoped key/value handoff between checkout initiation and
the return-URL reconciliation. One in-flight checkout per session.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.checkout.entity import CheckoutState


@runtime_checkable
class CheckoutStateStore(Protocol):

    async def save(self, session_id: str, state: CheckoutState) -> None: ...

    async def load(self, session_id: str) -> Optional[CheckoutState]: ...

    async def clear(self, session_id: str) -> None: ...
