"""
JWT identity provider - resolves the signed-in actor from a bearer token.

Access tokens are issued by the external auth service and signed with the
shared ``SECRET_KEY``. Claims used: ``sub`` (actor id), ``email`` and
``user_metadata.name`` / ``name`` for the display name.
"""
from __future__ import annotations

from typing import Any, Optional

import jwt

from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger
from domain.checkout.entity import Actor


logger = get_logger(__name__)


class JWTIdentityProvider:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        *,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> None:
        self.secret_key = secret_key or settings.SECRET_KEY
        self.algorithm = algorithm or settings.ALGORITHM
        self.audience = audience if audience is not None else settings.JWT_AUDIENCE

    def decode(self, token: str) -> dict[str, Any]:
        options = {} if self.audience else {"verify_aud": False}
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience or None,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.PyJWTError as e:
            logger.info("access_token_rejected", error=str(e))
            raise UnauthorizedException("Invalid access token")

    async def current_actor(self, access_token: Optional[str]) -> Optional[Actor]:
        """无令牌返回 None；令牌无效则抛出认证异常"""
        if not access_token:
            return None
        payload = self.decode(access_token)
        sub = payload.get("sub")
        if not sub:
            raise UnauthorizedException("Access token has no subject")
        metadata = payload.get("user_metadata") or {}
        name = metadata.get("name") or metadata.get("full_name") or payload.get("name")
        return Actor(id=str(sub), email=payload.get("email"), display_name=name)
