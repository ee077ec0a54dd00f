"""
API依赖项 - 认证与服务装配
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.ports.identity import IdentityProvider
from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_service import CheckoutApplicationService
from application.services.reconciliation_service import ReconciliationController
from core.config import settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.checkout.entity import Actor
from domain.common.exceptions import BusinessException
from infrastructure.auth.jwt_identity import JWTIdentityProvider
from infrastructure.cache import get_checkout_state_store
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


logger = get_logger(__name__)

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token issued by the auth service",
    auto_error=False,
)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


@lru_cache
def get_identity_provider() -> IdentityProvider:
    return JWTIdentityProvider()


@lru_cache
def get_gateway() -> PaymentGateway:
    """进程内复用同一个网关客户端（复用 HTTP 连接池）"""
    return get_payment_gateway()


async def get_current_actor(
    token: Optional[str] = Depends(get_bearer_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Actor:
    """获取当前登录用户；未登录返回401"""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未提供认证凭据",
            headers={"WWW-Authenticate": "Bearer"},
        )
    actor = await identity.current_actor(token)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭据",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


async def get_optional_actor(
    token: Optional[str] = Depends(get_bearer_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Optional[Actor]:
    """回调页面：登录态只是兜底来源，令牌失效不应阻断对账"""
    try:
        return await identity.current_actor(token)
    except BusinessException as exc:
        logger.info("optional_actor_ignored", error_type=exc.error_type)
        return None


async def get_checkout_service(
    gateway: PaymentGateway = Depends(get_gateway),
) -> CheckoutApplicationService:
    return CheckoutApplicationService(
        gateway=gateway,
        uow_factory=SQLAlchemyUnitOfWork,
        state_store=get_checkout_state_store(),
        return_url=payment_settings.fusionpay.return_url,
        activation_amount=payment_settings.creator_activation_amount,
        phone_pattern=settings.checkout.phone_pattern,
    )


async def get_reconciliation_controller(
    gateway: PaymentGateway = Depends(get_gateway),
) -> ReconciliationController:
    return ReconciliationController(
        gateway=gateway,
        uow_factory=SQLAlchemyUnitOfWork,
        state_store=get_checkout_state_store(),
        purchases_path=settings.checkout.purchases_path,
        redirect_delay_seconds=settings.checkout.success_redirect_delay_seconds,
        currency=payment_settings.currency,
    )
