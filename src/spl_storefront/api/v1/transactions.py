"""V1 transaction endpoints: the buyer's own purchases."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from starlette.responses import Response

from spl_storefront.api.dependencies import get_engine, require_user
from spl_storefront.api.middleware.auth import UserContext  # noqa: TC001
from spl_storefront.api.v1.schemas import (
    Pagination,
    RetryResponse,
    TransactionListResponse,
    TransactionResponse,
)
from spl_storefront.engine.client import StorefrontEngine  # noqa: TC001
from spl_storefront.engine.status import PaymentStatus

router = APIRouter(prefix="/transactions", tags=["transaction"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def tx_resp(t: object) -> dict:
    return TransactionResponse(
        id=t.id,
        uuid=t.transaction_uuid,
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
        created_at=t.created_at,
        updated_at=t.updated_at,
        completed_at=t.completed_at,
        tokens_sent_at=t.tokens_sent_at,
    ).model_dump(mode="json")


def csv_response(body: str, filename: str) -> Response:
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("")
async def list_transactions(
    ctx: Annotated[UserContext, Depends(require_user)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    status: PaymentStatus | None = None,
) -> dict:
    """The caller's transactions, newest first."""
    rows, total = await engine.transaction_service.get_transactions(
        user_id=ctx.user_id, status=status, page=page, limit=limit
    )
    return TransactionListResponse(
        transactions=[tx_resp(t) for t in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    ).model_dump(mode="json")


@router.get("/stats")
async def transaction_stats(
    ctx: Annotated[UserContext, Depends(require_user)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    return await engine.transaction_service.stats(user_id=ctx.user_id)


@router.get("/export")
async def export_transactions(
    ctx: Annotated[UserContext, Depends(require_user)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> Response:
    body = await engine.transaction_service.export_csv(user_id=ctx.user_id)
    return csv_response(body, "transactions.csv")


@router.get("/{transaction_id}")
async def get_transaction(
    transaction_id: int,
    ctx: Annotated[UserContext, Depends(require_user)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    tx = await engine.transaction_service.get(transaction_id, user_id=ctx.user_id)
    return tx_resp(tx)


@router.post("/{transaction_id}/retry")
async def retry_transaction(
    transaction_id: int,
    ctx: Annotated[UserContext, Depends(require_user)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    """Return a failed transaction to the lifecycle."""
    tx, client_secret = await engine.payment_service.retry(transaction_id, user_id=ctx.user_id)
    return RetryResponse(
        transaction=tx_resp(tx), client_secret=client_secret or None
    ).model_dump(mode="json", by_alias=True)
