"""V1 admin endpoints.

Transactions, fulfillment (manual and automated), token configuration,
the status repair pass, webhook audit and treasury health. All routes
require the admin key.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from starlette.responses import Response  # noqa: TC002

from spl_storefront.api.dependencies import get_engine, require_admin
from spl_storefront.api.middleware.auth import UserContext  # noqa: TC001
from spl_storefront.api.v1.schemas import (
    AdminTransactionResponse,
    FulfillmentStatusRequest,
    FulfillRequest,
    Pagination,
    RetryResponse,
    TokenConfigResponse,
    TokenConfigUpdateRequest,
    TransactionListResponse,
    WebhookLogResponse,
)
from spl_storefront.api.v1.transactions import csv_response
from spl_storefront.engine.client import StorefrontEngine  # noqa: TC001
from spl_storefront.engine.status import FulfillmentStatus, PaymentStatus, check_invariants

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _admin_tx_resp(t: object) -> dict:
    return AdminTransactionResponse(
        id=t.id,
        uuid=t.transaction_uuid,
        user_id=t.user_id,
        amount_usd=t.amount_usd,
        token_amount=t.token_amount,
        token_price_at_purchase=t.token_price_at_purchase,
        recipient_wallet_address=t.recipient_wallet_address,
        stripe_payment_intent_id=t.stripe_payment_intent_id,
        solana_transaction_signature=t.solana_transaction_signature,
        status=t.status,
        blockchain_status=t.blockchain_status,
        fulfillment_status=t.fulfillment_status,
        blockchain_confirmations=t.blockchain_confirmations,
        error_message=t.error_message,
        admin_notes=t.admin_notes,
        fulfilled_by=t.fulfilled_by,
        created_at=t.created_at,
        updated_at=t.updated_at,
        payment_succeeded_at=t.payment_succeeded_at,
        transfer_started_at=t.transfer_started_at,
        completed_at=t.completed_at,
        tokens_sent_at=t.tokens_sent_at,
        invariant_violations=check_invariants(t),
    ).model_dump(mode="json")


def _config_resp(terms: object) -> dict:
    return TokenConfigResponse(
        id=terms.config_id,
        price_per_token=terms.price_per_token,
        min_purchase_usd=terms.min_purchase_usd,
        max_purchase_usd=terms.max_purchase_usd,
        daily_limit_usd=terms.daily_limit_usd,
        total_supply=terms.total_supply,
        tokens_sold=terms.tokens_sold,
        remaining_supply=terms.remaining_supply,
        sale_enabled=terms.sale_enabled,
        updated_by=terms.updated_by,
        updated_at=terms.updated_at,
    ).model_dump(mode="json")


def _webhook_log_resp(w: object, *, include_payload: bool = False) -> dict:
    return WebhookLogResponse(
        id=w.id,
        event_id=w.event_id,
        event_type=w.event_type,
        processing_status=w.processing_status,
        error_message=w.error_message,
        transaction_id=w.transaction_id,
        received_at=w.received_at,
        processed_at=w.processed_at,
        payload=w.payload if include_payload else None,
    ).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@router.get("/transactions")
async def admin_list_transactions(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    status: PaymentStatus | None = None,
    fulfillment_status: FulfillmentStatus | None = None,
    user_id: int | None = None,
) -> dict:
    rows, total = await engine.transaction_service.get_transactions(
        user_id=user_id,
        status=status,
        fulfillment_status=fulfillment_status,
        page=page,
        limit=limit,
    )
    return TransactionListResponse(
        transactions=[_admin_tx_resp(t) for t in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    ).model_dump(mode="json")


@router.get("/transactions/export")
async def admin_export_transactions(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    status: PaymentStatus | None = None,
) -> Response:
    body = await engine.transaction_service.export_csv(status=status)
    return csv_response(body, "transactions-export.csv")


@router.get("/transactions/{transaction_id}")
async def admin_get_transaction(
    transaction_id: int,
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    return _admin_tx_resp(await engine.transaction_service.get(transaction_id))


@router.post("/transactions/{transaction_id}/retry")
async def admin_retry_transaction(
    transaction_id: int,
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    tx, client_secret = await engine.payment_service.retry(transaction_id)
    return RetryResponse(
        transaction=_admin_tx_resp(tx), client_secret=client_secret or None
    ).model_dump(mode="json", by_alias=True)


@router.get("/dashboard/stats")
async def admin_dashboard_stats(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    return {
        "transactions": await engine.transaction_service.stats(),
        "fulfillment": await engine.fulfillment_service.stats(),
        "token_config": _config_resp(await engine.token_config_service.get_terms()),
    }


# ---------------------------------------------------------------------------
# Fulfillment
# ---------------------------------------------------------------------------


@router.get("/fulfillments/pending")
async def admin_pending_fulfillments(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict:
    rows, total = await engine.fulfillment_service.get_pending(page=page, limit=limit)
    return TransactionListResponse(
        transactions=[_admin_tx_resp(t) for t in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    ).model_dump(mode="json")


@router.get("/fulfillments/stats")
async def admin_fulfillment_stats(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    return await engine.fulfillment_service.stats()


@router.post("/fulfillments/{transaction_id}/fulfill")
async def admin_fulfill(
    transaction_id: int,
    body: FulfillRequest,
    ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    """Record an externally made token transfer and complete the transaction."""
    tx = await engine.fulfillment_service.fulfill(
        transaction_id,
        transaction_hash=body.transaction_hash,
        notes=body.notes,
        fulfilled_by=ctx.actor,
    )
    return _admin_tx_resp(tx)


@router.put("/fulfillments/{transaction_id}/status")
async def admin_update_fulfillment_status(
    transaction_id: int,
    body: FulfillmentStatusRequest,
    ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    tx = await engine.fulfillment_service.update_status(
        transaction_id,
        body.status,
        notes=body.notes,
        transaction_hash=body.transaction_hash,
        updated_by=ctx.actor,
    )
    return _admin_tx_resp(tx)


@router.post("/fulfillments/{transaction_id}/transfer")
async def admin_transfer_tokens(
    transaction_id: int,
    ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    """Send the tokens from the treasury and complete the transaction."""
    tx = await engine.fulfillment_service.transfer(transaction_id, fulfilled_by=ctx.actor)
    return _admin_tx_resp(tx)


@router.post("/fulfillments/{transaction_id}/confirmations")
async def admin_refresh_confirmations(
    transaction_id: int,
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    tx, status = await engine.fulfillment_service.refresh_confirmations(transaction_id)
    return {
        "transaction": _admin_tx_resp(tx),
        "signature_status": {
            "found": status.found,
            "confirmations": status.confirmations,
            "confirmation_status": status.confirmation_status,
            "error": status.error,
        },
    }


# ---------------------------------------------------------------------------
# Token configuration
# ---------------------------------------------------------------------------


@router.get("/token-config")
async def admin_get_token_config(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    return _config_resp(await engine.token_config_service.get_terms())


@router.put("/token-config")
async def admin_update_token_config(
    body: TokenConfigUpdateRequest,
    ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    terms = await engine.token_config_service.update(
        body.model_dump(exclude_unset=True), updated_by=ctx.actor
    )
    return _config_resp(terms)


# ---------------------------------------------------------------------------
# Maintenance & audit
# ---------------------------------------------------------------------------


@router.post("/reconcile")
async def admin_reconcile(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    dry_run: bool = False,
) -> dict:
    """Run the status repair pass."""
    report = await engine.reconciliation_service.run(dry_run=dry_run)
    return report.to_dict()


@router.get("/webhook-logs")
async def admin_webhook_logs(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    event_type: str | None = None,
    processing_status: str | None = None,
    include_payload: bool = False,
) -> dict:
    rows, total = await engine.webhook_service.get_logs(
        event_type=event_type,
        processing_status=processing_status,
        page=page,
        limit=limit,
    )
    return {
        "webhook_logs": [_webhook_log_resp(w, include_payload=include_payload) for w in rows],
        "pagination": Pagination.build(page=page, limit=limit, total=total).model_dump(),
    }


@router.get("/treasury")
async def admin_treasury(
    _ctx: Annotated[UserContext, Depends(require_admin)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    status = await engine.solana.get_treasury_status()
    return status.to_dict()
