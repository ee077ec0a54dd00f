"""
Business codes carried in the `code` field of every API response.

Gateway failures live in `shared.codes.payment_codes` (6xxxx).
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx); 201xx belong to checkout and reconciliation
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found
    CONTENT_NOT_FOUND = 20101
    ALREADY_PURCHASED = 20102
    ALREADY_CREATOR = 20103
    UNRESOLVED_ACTOR = 20104

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    TOKEN_EXPIRED = 30004

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
