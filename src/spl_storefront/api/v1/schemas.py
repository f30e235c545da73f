"""V1 API request/response Pydantic schemas.

These are the *API-layer* schemas that define the HTTP contract. They
do NOT inherit from SQLAlchemy models; the endpoint code maps between
ORM objects and these schemas. Request bodies accept the camelCase keys
the storefront frontend sends.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from decimal import Decimal  # noqa: TC003
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Generic / Pagination
# ---------------------------------------------------------------------------


class Pagination(BaseModel):
    """Page metadata for list responses."""

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> Pagination:
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit)


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


class CreateIntentRequest(_CamelModel):
    """POST /api/v1/payment/create-intent"""

    usd_amount: Decimal = Field(alias="usdAmount")
    wallet_address: str = Field(alias="walletAddress")
    token_amount: Decimal | None = Field(default=None, alias="tokenAmount")


class PaymentIntentPayload(_CamelModel):
    id: str
    client_secret: str = Field(serialization_alias="clientSecret")


class TransactionRef(BaseModel):
    id: int
    uuid: str
    status: str
    token_amount: Decimal
    amount_usd: Decimal


class CreateIntentResponse(_CamelModel):
    payment_intent: PaymentIntentPayload = Field(serialization_alias="paymentIntent")
    transaction: TransactionRef


class ConfirmPaymentRequest(_CamelModel):
    """POST /api/v1/payment/confirm"""

    payment_intent_id: str = Field(alias="paymentIntentId", min_length=1)


class TokenPriceResponse(BaseModel):
    price_per_token: Decimal
    min_purchase_usd: Decimal
    max_purchase_usd: Decimal
    daily_limit_usd: Decimal
    sale_active: bool
    remaining_supply: Decimal | None = None


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    """A transaction as shown to its owner."""

    id: int
    uuid: str
    amount_usd: Decimal
    token_amount: Decimal
    token_price_at_purchase: Decimal
    recipient_wallet_address: str
    stripe_payment_intent_id: str | None = None
    solana_transaction_signature: str | None = None
    status: str
    blockchain_status: str
    fulfillment_status: str
    blockchain_confirmations: int = 0
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    tokens_sent_at: datetime | None = None


class AdminTransactionResponse(TransactionResponse):
    """A transaction with the admin-only columns."""

    user_id: int
    admin_notes: str | None = None
    fulfilled_by: str | None = None
    payment_succeeded_at: datetime | None = None
    transfer_started_at: datetime | None = None
    invariant_violations: list[str] = Field(default_factory=list)


class TransactionListResponse(BaseModel):
    transactions: list[dict[str, Any]]
    pagination: Pagination


class RetryResponse(_CamelModel):
    transaction: dict[str, Any]
    client_secret: str | None = Field(default=None, serialization_alias="clientSecret")


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class FulfillRequest(_CamelModel):
    """POST /api/v1/admin/fulfillments/{id}/fulfill"""

    transaction_hash: str = Field(alias="transactionHash", min_length=1)
    notes: str | None = None


class FulfillmentStatusRequest(_CamelModel):
    """PUT /api/v1/admin/fulfillments/{id}/status"""

    status: str
    notes: str | None = None
    transaction_hash: str | None = Field(default=None, alias="transactionHash")


class TokenConfigUpdateRequest(_CamelModel):
    """PUT /api/v1/admin/token-config: every field optional."""

    price_per_token: Decimal | None = Field(default=None, alias="pricePerToken", gt=0)
    min_purchase_usd: Decimal | None = Field(default=None, alias="minPurchaseUsd", gt=0)
    max_purchase_usd: Decimal | None = Field(default=None, alias="maxPurchaseUsd", gt=0)
    daily_limit_usd: Decimal | None = Field(default=None, alias="dailyLimitUsd", gt=0)
    total_supply: Decimal | None = Field(default=None, alias="totalSupply", ge=0)
    sale_enabled: bool | None = Field(default=None, alias="saleEnabled")


class TokenConfigResponse(BaseModel):
    id: int | None = None
    price_per_token: Decimal
    min_purchase_usd: Decimal
    max_purchase_usd: Decimal
    daily_limit_usd: Decimal
    total_supply: Decimal | None = None
    tokens_sold: Decimal
    remaining_supply: Decimal | None = None
    sale_enabled: bool
    updated_by: str | None = None
    updated_at: datetime | None = None


class WebhookLogResponse(BaseModel):
    id: int
    event_id: str
    event_type: str
    processing_status: str
    error_message: str | None = None
    transaction_id: int | None = None
    received_at: datetime | None = None
    processed_at: datetime | None = None
    payload: dict[str, Any] | None = None
