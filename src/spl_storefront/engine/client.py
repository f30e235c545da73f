"""StorefrontEngine: central engine client owning all services."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from spl_storefront.chain.solana.service import SolanaService
    from spl_storefront.config.settings import AppConfig
    from spl_storefront.datastore.client import Datastore
    from spl_storefront.engine.services.fulfillment_service import FulfillmentService
    from spl_storefront.engine.services.payment_service import PaymentService
    from spl_storefront.engine.services.reconciliation_service import ReconciliationService
    from spl_storefront.engine.services.token_config_service import TokenConfigService
    from spl_storefront.engine.services.transaction_service import TransactionService
    from spl_storefront.engine.services.webhook_service import WebhookService
    from spl_storefront.metrics.collector import EngineMetrics
    from spl_storefront.payments.stripe.service import StripeService

logger = logging.getLogger(__name__)

# Error messages
_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


class StorefrontEngine:
    """Central engine that owns infrastructure, provider clients and services.

    Provider clients are built once per process in :meth:`initialize`
    unless pre-built ones are passed in (tests do this).
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        stripe: StripeService | None = None,
        solana: SolanaService | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration.
            stripe: Optional pre-built Stripe service.
            solana: Optional pre-built Solana service.
            metrics: Optional metrics (e.g. bound to an app's registry).
        """
        self._config = config
        self._initialized = False

        # Infrastructure components
        self._datastore: Datastore | None = None
        self._stripe: StripeService | None = stripe
        self._solana: SolanaService | None = solana
        self._metrics: EngineMetrics | None = metrics

        # Services
        self._transaction_service: TransactionService | None = None
        self._payment_service: PaymentService | None = None
        self._webhook_service: WebhookService | None = None
        self._fulfillment_service: FulfillmentService | None = None
        self._reconciliation_service: ReconciliationService | None = None
        self._token_config_service: TokenConfigService | None = None

    async def initialize(self) -> None:
        """Open the datastore, create tables, connect providers and build services.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        # Import here to avoid circular deps
        from spl_storefront.datastore.client import Datastore
        from spl_storefront.datastore.migrations import run_auto_migrate

        self._datastore = Datastore(self._config.db)
        await self._datastore.open()
        await run_auto_migrate(self._datastore.engine)

        from spl_storefront.chain.solana.service import SolanaService
        from spl_storefront.payments.stripe.service import StripeService

        if self._stripe is None:
            self._stripe = StripeService(self._config.stripe)
        if not self._stripe.is_configured:
            logger.warning("Stripe secret key not configured; payments will fail")

        if self._solana is None:
            self._solana = SolanaService(self._config.solana)
        await self._solana.connect()
        if not self._solana.is_configured:
            logger.warning("Solana treasury not configured; automated transfers disabled")

        from spl_storefront.metrics.collector import EngineMetrics

        if self._metrics is None:
            self._metrics = EngineMetrics()

        from spl_storefront.engine.services.fulfillment_service import FulfillmentService
        from spl_storefront.engine.services.payment_service import PaymentService
        from spl_storefront.engine.services.reconciliation_service import ReconciliationService
        from spl_storefront.engine.services.token_config_service import TokenConfigService
        from spl_storefront.engine.services.transaction_service import TransactionService
        from spl_storefront.engine.services.webhook_service import WebhookService

        self._transaction_service = TransactionService(self)
        self._payment_service = PaymentService(self)
        self._webhook_service = WebhookService(self)
        self._fulfillment_service = FulfillmentService(self)
        self._reconciliation_service = ReconciliationService(self)
        self._token_config_service = TokenConfigService(self)

        self._initialized = True
        logger.info(
            "Storefront engine initialized (db=%s, solana=%s)",
            self._config.db.engine,
            self._config.solana.network,
        )

    async def close(self) -> None:
        """Gracefully shut down all services and connections.

        Can be called multiple times (idempotent).
        """
        if not self._initialized:
            return

        if self._solana is not None:
            await self._solana.close()

        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._transaction_service = None
        self._payment_service = None
        self._webhook_service = None
        self._fulfillment_service = None
        self._reconciliation_service = None
        self._token_config_service = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def datastore(self) -> Datastore:
        if self._datastore is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._datastore

    @property
    def stripe(self) -> StripeService:
        if self._stripe is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._stripe

    @property
    def solana(self) -> SolanaService:
        if self._solana is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._solana

    @property
    def metrics(self) -> EngineMetrics:
        if self._metrics is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._metrics

    @property
    def transaction_service(self) -> TransactionService:
        if self._transaction_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._transaction_service

    @property
    def payment_service(self) -> PaymentService:
        if self._payment_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._payment_service

    @property
    def webhook_service(self) -> WebhookService:
        if self._webhook_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._webhook_service

    @property
    def fulfillment_service(self) -> FulfillmentService:
        if self._fulfillment_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._fulfillment_service

    @property
    def reconciliation_service(self) -> ReconciliationService:
        if self._reconciliation_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._reconciliation_service

    @property
    def token_config_service(self) -> TokenConfigService:
        if self._token_config_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._token_config_service

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Report the status of each component."""
        result: dict[str, Any] = {
            "engine": "ok" if self._initialized else "not_initialized",
        }

        if self._datastore is not None and self._datastore.is_open:
            try:
                await self._datastore.ping()
                result["datastore"] = "ok"
            except Exception as exc:
                result["datastore"] = f"error: {exc}"
        else:
            result["datastore"] = "not_connected"

        result["stripe"] = (
            "configured" if self._stripe is not None and self._stripe.is_configured else "not_configured"
        )
        result["solana"] = (
            "configured" if self._solana is not None and self._solana.is_configured else "not_configured"
        )
        return result
