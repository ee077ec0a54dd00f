"""Infrastructure models package exports."""
from .base import Base, metadata
from .checkout import ContentModel, PurchaseModel, TransactionModel, UserModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "ContentModel",
    "TransactionModel",
    "PurchaseModel",
]
