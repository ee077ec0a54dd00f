"""
Identity provider port: who is calling, if anyone.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from domain.checkout.entity import Actor


@runtime_checkable
class IdentityProvider(Protocol):

    async def current_actor(self, access_token: Optional[str]) -> Optional[Actor]: ...
