"""
Gateway error codes and the provider status vocabulary.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    REDIRECT_MISSING = 60002
    TIMEOUT = 60003


# Provider status literal -> internal settlement state ("paid" / "pending").
# Anything not listed here is treated as failed by the gateway clients.
PROVIDER_STATUS_TO_INTERNAL = {
    "fusionpay": {
        "paid": "paid",
        "pending": "pending",
    },
}
