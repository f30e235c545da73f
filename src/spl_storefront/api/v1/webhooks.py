"""V1 webhook endpoint: Stripe events."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request

from spl_storefront.api.dependencies import get_engine
from spl_storefront.engine.client import StorefrontEngine  # noqa: TC001

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    stripe_signature: Annotated[str | None, Header(alias="stripe-signature")] = None,
) -> dict:
    """Verify and process a Stripe event.

    Signature failures return 400. Every verified event is acknowledged
    with 200, including unknown intents and handler failures (recorded in
    the webhook log).
    """
    payload = await request.body()
    result = await engine.webhook_service.handle(payload, stripe_signature)
    return result.to_dict()
