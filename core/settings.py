"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials and endpoints
can be swapped per deployment without touching application settings.
"""
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 5.0
    write: float = 5.0
    total: float = 8.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class FusionPaySettings(BaseModel):
    api_url: str = "https://www.pay.moneyfusion.net/Bendza/87899217408b030d/pay/"
    status_url: str = "https://www.pay.moneyfusion.net/paiementNotif"
    return_url: str = "http://localhost:5173/payment-callback"
    webhook_url: str = "http://localhost:8000/api/v1/payments/webhooks/fusionpay"
    default_phone: str = "00000000"


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="fusionpay", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    currency: str = "XOF"
    creator_activation_amount: int = 200
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)

    fusionpay: FusionPaySettings = Field(default_factory=FusionPaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
