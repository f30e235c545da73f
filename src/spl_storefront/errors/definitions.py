"""Predefined error instances shared by services and routes."""

from __future__ import annotations

from spl_storefront.errors.storefront_errors import StorefrontError

# -- Authentication --------------------------------------------------------

ErrUnauthorized = StorefrontError("unauthorized", status_code=401, code="unauthorized")
ErrAdminRequired = StorefrontError(
    "admin authentication required", status_code=403, code="admin-required"
)
ErrEngineUnavailable = StorefrontError(
    "service is starting up", status_code=503, code="engine-unavailable"
)

# -- Validation ------------------------------------------------------------

ErrInvalidWalletAddress = StorefrontError(
    "invalid Solana wallet address", status_code=400, code="invalid-wallet-address"
)
ErrInvalidAmount = StorefrontError("invalid amount", status_code=400, code="invalid-amount")
ErrAmountBelowMinimum = StorefrontError(
    "amount is below the minimum purchase", status_code=400, code="amount-below-minimum"
)
ErrAmountAboveMaximum = StorefrontError(
    "amount is above the maximum purchase", status_code=400, code="amount-above-maximum"
)
ErrDailyLimitExceeded = StorefrontError(
    "daily spending limit exceeded", status_code=400, code="daily-limit-exceeded"
)
ErrSaleInactive = StorefrontError(
    "token sale is currently inactive", status_code=400, code="sale-inactive"
)
ErrSupplyExhausted = StorefrontError(
    "not enough tokens left in the sale supply", status_code=400, code="supply-exhausted"
)
ErrInvalidTokenConfig = StorefrontError(
    "invalid token configuration", status_code=400, code="invalid-token-config"
)

ErrInvalidFulfillmentStatus = StorefrontError(
    "fulfillment status must be one of pending, processing, completed, failed",
    status_code=400,
    code="invalid-fulfillment-status",
)
ErrMissingTransactionHash = StorefrontError(
    "transaction hash is required", status_code=400, code="missing-transaction-hash"
)

# -- Not Found -------------------------------------------------------------

ErrTransactionNotFound = StorefrontError(
    "transaction not found", status_code=404, code="transaction-not-found"
)

# -- Transaction state -----------------------------------------------------

ErrTransactionAlreadyCompleted = StorefrontError(
    "transaction already completed", status_code=409, code="transaction-already-completed"
)
ErrInvalidStatusTransition = StorefrontError(
    "invalid status transition", status_code=409, code="invalid-status-transition"
)
ErrTransactionNotRetryable = StorefrontError(
    "only failed transactions can be retried", status_code=409, code="transaction-not-retryable"
)
ErrPaymentNotSucceeded = StorefrontError(
    "cannot fulfill transaction - payment not successful",
    status_code=409,
    code="payment-not-succeeded",
)
ErrTransferInProgress = StorefrontError(
    "token transfer already in progress", status_code=409, code="transfer-in-progress"
)
ErrPriorTransferLanded = StorefrontError(
    "an earlier transfer for this transaction landed on chain; fulfill it with that signature",
    status_code=409,
    code="prior-transfer-landed",
)

# -- Webhooks --------------------------------------------------------------

ErrMissingWebhookSignature = StorefrontError(
    "missing stripe-signature header", status_code=400, code="missing-signature"
)
ErrInvalidWebhookSignature = StorefrontError(
    "invalid webhook signature", status_code=400, code="invalid-signature"
)
ErrInvalidWebhookPayload = StorefrontError(
    "invalid webhook payload", status_code=400, code="invalid-payload"
)
ErrWebhookNotConfigured = StorefrontError(
    "stripe webhook secret not configured", status_code=503, code="webhook-not-configured"
)
