"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from spl_storefront import __version__
from spl_storefront.api.middleware.cors import setup_cors
from spl_storefront.api.v1 import v1_router
from spl_storefront.config.settings import AppConfig
from spl_storefront.engine.client import StorefrontEngine
from spl_storefront.errors.storefront_errors import StorefrontError
from spl_storefront.metrics.collector import EngineMetrics
from spl_storefront.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from spl_storefront.chain.solana.service import SolanaService
    from spl_storefront.payments.stripe.service import StripeService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle hooks.

    Initialises the engine (datastore, providers, services) on startup and
    gracefully shuts down on exit.
    """
    config: AppConfig = app.state.config
    engine = StorefrontEngine(
        config,
        stripe=app.state.stripe,
        solana=app.state.solana,
        metrics=app.state.metrics,
    )
    try:
        await engine.initialize()
        app.state.engine = engine
        logger.info("Storefront engine initialized")
        yield
    finally:
        await engine.close()
        app.state.engine = None
        logger.info("Storefront engine shut down")


def create_app(
    *,
    config: AppConfig | None = None,
    stripe: StripeService | None = None,
    solana: SolanaService | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a default config is created
            from environment variables.
        stripe: Optional pre-built Stripe service passed to the engine.
        solana: Optional pre-built Solana service passed to the engine.
    """
    if config is None:
        config = AppConfig()

    app = FastAPI(
        title="spl-storefront",
        version=__version__,
        description="Card-to-SPL-token storefront: Stripe payments, Solana fulfillment",
        lifespan=_lifespan,
    )

    # Store config and providers on app.state for lifespan access
    app.state.config = config
    app.state.stripe = stripe
    app.state.solana = solana
    app.state.metrics = EngineMetrics()

    # -- Middleware --
    setup_cors(app)
    if config.metrics.enabled:
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)

    # -- Error handler --
    @app.exception_handler(StorefrontError)
    async def _storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    # -- Base routes --
    @app.get("/health", tags=["base"])
    async def health() -> dict[str, Any]:
        engine: StorefrontEngine | None = getattr(app.state, "engine", None)
        if engine is None:
            return {"status": "starting"}
        checks = await engine.health_check()
        status = "ok" if checks.get("datastore") == "ok" else "degraded"
        return {"status": status, **checks}

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        body = generate_latest(app.state.metrics.registry)
        return Response(
            content=body,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    # -- Mount v1 API --
    app.include_router(v1_router)

    return app
