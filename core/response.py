"""
统一响应格式：{code, message, data, error}
"""
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_serializer

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601，以 Z 结尾"""
        return timestamp.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(data: Any = None, message: str = "Success", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Response:
    error = ErrorDetail(type=error_type, details=details, field=field, request_id=request_id)
    return Response(code=code, message=message, error=error)


def exception_response(exc: BusinessException, request_id: Optional[str] = None) -> Response:
    """业务异常直接转成错误响应，字段一一对应"""
    return error_response(
        code=exc.code,
        message=exc.message,
        error_type=exc.error_type,
        details=exc.details,
        field=exc.field,
        request_id=request_id,
    )
