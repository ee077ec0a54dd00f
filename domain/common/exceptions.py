"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class ContentNotFoundException(BusinessException):
    def __init__(self, content_id: str):
        super().__init__(
            code=BusinessCode.CONTENT_NOT_FOUND,
            message="Content not found",
            error_type="ContentNotFound",
            details={"content_id": content_id},
        )


class AlreadyPurchasedException(BusinessException):
    """The actor already owns the content; access must not be credited twice."""

    def __init__(self, actor_id: str, content_id: str):
        self.actor_id = actor_id
        self.content_id = content_id
        super().__init__(
            code=BusinessCode.ALREADY_PURCHASED,
            message="Content already purchased",
            error_type="AlreadyPurchased",
            details={"actor_id": actor_id, "content_id": content_id},
        )


class AlreadyCreatorException(BusinessException):
    def __init__(self, actor_id: str):
        super().__init__(
            code=BusinessCode.ALREADY_CREATOR,
            message="Creator account already active",
            error_type="AlreadyCreator",
            details={"actor_id": actor_id},
        )


class UnresolvedActorException(BusinessException):
    """No payer id could be recovered from any source; nothing can be recorded."""

    def __init__(self, token: Optional[str] = None):
        super().__init__(
            code=BusinessCode.UNRESOLVED_ACTOR,
            message="Could not determine who made this payment",
            error_type="UnresolvedActor",
            details={"token": token} if token else None,
        )


class InvalidPhoneNumberException(BusinessException):
    def __init__(self, phone: str):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message="Invalid mobile money number",
            error_type="InvalidPhoneNumber",
            details={"phone": phone},
            field="payer_phone",
        )
