"""V1 REST API routes.

Combines all sub-routers under the ``/api/v1`` prefix.
"""

from fastapi import APIRouter

from spl_storefront.api.v1.admin import router as admin_router
from spl_storefront.api.v1.payment import router as payment_router
from spl_storefront.api.v1.transactions import router as transactions_router
from spl_storefront.api.v1.webhooks import router as webhooks_router

v1_router = APIRouter(prefix="/api/v1")

v1_router.include_router(payment_router)
v1_router.include_router(webhooks_router)
v1_router.include_router(transactions_router)
v1_router.include_router(admin_router)

__all__ = ["v1_router"]
