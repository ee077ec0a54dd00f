"""
Payment gateway failures as BusinessException variants, so the global
handlers render them with the unified envelope (502/503/504 via PaymentCode).
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentGatewayError(BusinessException):
    code = PaymentCode.PROVIDER_ERROR
    error_type = "PaymentProviderError"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.provider = provider
        super().__init__(
            code=self.code,
            message=message,
            error_type=self.error_type,
            details={"provider": provider, "provider_code": provider_code, **(details or {})},
        )


class PaymentProviderError(PaymentGatewayError):
    """Provider answered, but with an error status, a refusal or an unreadable body."""


class PaymentRecoverableError(PaymentGatewayError):
    """Transport-level failure that survived the retry budget."""

    code = PaymentCode.PROVIDER_RECOVERABLE
    error_type = "PaymentRecoverableError"


class PaymentRedirectMissingError(PaymentGatewayError):
    """Provider accepted the charge but returned no checkout URL."""

    code = PaymentCode.REDIRECT_MISSING
    error_type = "PaymentRedirectMissing"

    def __init__(self, *, provider: str, token: Optional[str] = None):
        super().__init__(
            "Payment provider returned no checkout URL",
            provider=provider,
            details={"token": token},
        )


class PaymentTimeoutError(PaymentRecoverableError):
    """The whole request, retries included, ran past the total timeout."""

    code = PaymentCode.TIMEOUT
    error_type = "PaymentTimeout"
