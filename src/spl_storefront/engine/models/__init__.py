"""Storefront data models (SQLAlchemy ORM).

Import :data:`ALL_MODELS` for migration and table creation.
"""

from spl_storefront.engine.models.base import Base, TimestampMixin
from spl_storefront.engine.models.token_config import TokenConfig
from spl_storefront.engine.models.transaction import Transaction
from spl_storefront.engine.models.webhook_log import WebhookLog

ALL_MODELS: list[type[Base]] = [
    Transaction,
    WebhookLog,
    TokenConfig,
]

__all__ = [
    "ALL_MODELS",
    "Base",
    "TimestampMixin",
    "TokenConfig",
    "Transaction",
    "WebhookLog",
]
