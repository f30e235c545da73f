"""V1 payment endpoints: token price, create intent, confirm."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from spl_storefront.api.dependencies import get_engine, require_user
from spl_storefront.api.middleware.auth import UserContext  # noqa: TC001
from spl_storefront.api.v1.schemas import (
    ConfirmPaymentRequest,
    CreateIntentRequest,
    CreateIntentResponse,
    PaymentIntentPayload,
    TokenPriceResponse,
    TransactionRef,
)
from spl_storefront.api.v1.transactions import tx_resp
from spl_storefront.engine.client import StorefrontEngine  # noqa: TC001

router = APIRouter(prefix="/payment", tags=["payment"])


@router.get("/token-price")
async def get_token_price(
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    """Current price and purchase limits."""
    terms = await engine.token_config_service.get_terms()
    return TokenPriceResponse(
        price_per_token=terms.price_per_token,
        min_purchase_usd=terms.min_purchase_usd,
        max_purchase_usd=terms.max_purchase_usd,
        daily_limit_usd=terms.daily_limit_usd,
        sale_active=terms.sale_enabled,
        remaining_supply=terms.remaining_supply,
    ).model_dump(mode="json")


@router.post("/create-intent")
async def create_intent(
    body: CreateIntentRequest,
    ctx: Annotated[UserContext, Depends(require_user)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    """Record a purchase and create its Stripe PaymentIntent."""
    created = await engine.payment_service.create_payment_intent(
        user_id=ctx.user_id,
        usd_amount=body.usd_amount,
        wallet_address=body.wallet_address,
        token_amount=body.token_amount,
    )
    tx = created.transaction
    return CreateIntentResponse(
        payment_intent=PaymentIntentPayload(
            id=created.intent.id, client_secret=created.intent.client_secret
        ),
        transaction=TransactionRef(
            id=tx.id,
            uuid=tx.transaction_uuid,
            status=tx.status,
            token_amount=tx.token_amount,
            amount_usd=tx.amount_usd,
        ),
    ).model_dump(mode="json", by_alias=True)


@router.post("/confirm")
async def confirm_payment(
    body: ConfirmPaymentRequest,
    ctx: Annotated[UserContext, Depends(require_user)],
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
) -> dict:
    """Re-check the intent with Stripe and apply its outcome."""
    tx = await engine.payment_service.confirm_payment(
        user_id=ctx.user_id, intent_id=body.payment_intent_id
    )
    return {"transaction": tx_resp(tx)}
