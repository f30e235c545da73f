"""Webhook service: verify, log and dispatch Stripe events.

Each delivery is verified first; a bad signature raises before anything
is written. A verified delivery is appended to ``webhook_logs`` as
``pending``, dispatched, and the log row is then marked ``processed`` or
``failed``. Handler errors are recorded on the log row and the delivery
is still acknowledged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update

from spl_storefront.engine.models.base import utcnow
from spl_storefront.engine.models.webhook_log import WebhookLog
from spl_storefront.engine.services.payment_service import PaymentOutcome
from spl_storefront.engine.status import WebhookProcessingStatus
from spl_storefront.payments.stripe.models import PaymentIntentInfo

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from spl_storefront.engine.client import StorefrontEngine
    from spl_storefront.payments.stripe.models import WebhookEvent

logger = logging.getLogger(__name__)

EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"
EVENT_CANCELED = "payment_intent.canceled"
EVENT_REQUIRES_ACTION = "payment_intent.requires_action"


@dataclass
class WebhookResult:
    """What the handler did with one delivery."""

    event_id: str
    event_type: str
    log_id: int
    processing_status: WebhookProcessingStatus
    outcome: str
    transaction_id: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "received": True,
            "event_id": self.event_id,
            "type": self.event_type,
            "processing_status": self.processing_status.value,
            "outcome": self.outcome,
        }


class WebhookService:
    """Stripe webhook reconciliation."""

    def __init__(self, engine: StorefrontEngine) -> None:
        self._engine = engine
        self._handlers: dict[
            str, Callable[[PaymentIntentInfo], Awaitable[tuple[PaymentOutcome, int | None]]]
        ] = {
            EVENT_SUCCEEDED: self._on_succeeded,
            EVENT_FAILED: self._on_failed,
            EVENT_CANCELED: self._on_canceled,
            EVENT_REQUIRES_ACTION: self._on_requires_action,
        }

    async def handle(self, payload: bytes, signature_header: str | None) -> WebhookResult:
        """Verify and process one webhook delivery.

        Raises:
            StorefrontError: If the signature or payload is invalid. Nothing is
                written in that case.
        """
        event = self._engine.stripe.construct_event(payload, signature_header)
        return await self.process_event(event)

    async def process_event(self, event: WebhookEvent) -> WebhookResult:
        """Log and dispatch an already-verified event."""
        log_id = await self._append_log(event)
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info("Unhandled webhook event type %s (%s)", event.type, event.id)
            await self._finish_log(log_id, WebhookProcessingStatus.PROCESSED)
            self._engine.metrics.record_webhook(event.type, PaymentOutcome.IGNORED)
            return WebhookResult(
                event_id=event.id,
                event_type=event.type,
                log_id=log_id,
                processing_status=WebhookProcessingStatus.PROCESSED,
                outcome=PaymentOutcome.IGNORED,
            )

        try:
            intent = PaymentIntentInfo.from_stripe(event.data_object)
            outcome, tx_id = await handler(intent)
        except Exception as exc:
            logger.exception("Webhook %s (%s) handler failed", event.id, event.type)
            error = str(exc) or exc.__class__.__name__
            await self._finish_log(log_id, WebhookProcessingStatus.FAILED, error=error)
            self._engine.metrics.record_webhook(event.type, "failed")
            return WebhookResult(
                event_id=event.id,
                event_type=event.type,
                log_id=log_id,
                processing_status=WebhookProcessingStatus.FAILED,
                outcome="failed",
                error=error,
            )

        await self._finish_log(log_id, WebhookProcessingStatus.PROCESSED, transaction_id=tx_id)
        self._engine.metrics.record_webhook(event.type, outcome)
        logger.info("Webhook %s (%s) processed: %s", event.id, event.type, outcome)
        return WebhookResult(
            event_id=event.id,
            event_type=event.type,
            log_id=log_id,
            processing_status=WebhookProcessingStatus.PROCESSED,
            outcome=outcome,
            transaction_id=tx_id,
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_succeeded(self, intent: PaymentIntentInfo) -> tuple[PaymentOutcome, int | None]:
        return await self._engine.payment_service.mark_payment_succeeded(intent.id)

    async def _on_failed(self, intent: PaymentIntentInfo) -> tuple[PaymentOutcome, int | None]:
        reason = intent.last_error or "Payment failed"
        return await self._engine.payment_service.mark_payment_failed(intent.id, reason)

    async def _on_canceled(self, intent: PaymentIntentInfo) -> tuple[PaymentOutcome, int | None]:
        return await self._engine.payment_service.mark_payment_failed(
            intent.id, "Payment was canceled"
        )

    async def _on_requires_action(
        self, intent: PaymentIntentInfo
    ) -> tuple[PaymentOutcome, int | None]:
        tx = await self._engine.transaction_service.get_by_payment_intent(intent.id)
        logger.info("Payment intent %s requires customer action", intent.id)
        return PaymentOutcome.IGNORED, tx.id if tx is not None else None

    # ------------------------------------------------------------------
    # Log rows
    # ------------------------------------------------------------------

    async def _append_log(self, event: WebhookEvent) -> int:
        row = WebhookLog(
            event_id=event.id,
            event_type=event.type,
            payload=event.payload,
            processing_status=WebhookProcessingStatus.PENDING,
        )
        async with self._engine.datastore.transaction() as session:
            session.add(row)
        return row.id

    async def _finish_log(
        self,
        log_id: int,
        status: WebhookProcessingStatus,
        *,
        error: str | None = None,
        transaction_id: int | None = None,
    ) -> None:
        async with self._engine.datastore.transaction() as session:
            await session.execute(
                update(WebhookLog)
                .where(WebhookLog.id == log_id)
                .values(
                    processing_status=status,
                    error_message=error,
                    transaction_id=transaction_id,
                    processed_at=utcnow(),
                )
            )

    async def get_logs(
        self,
        *,
        event_type: str | None = None,
        processing_status: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[WebhookLog], int]:
        """Return one page of webhook logs (newest first) and the total count."""
        page = max(page, 1)
        limit = min(max(limit, 1), 200)
        conditions = []
        if event_type:
            conditions.append(WebhookLog.event_type == event_type)
        if processing_status:
            conditions.append(WebhookLog.processing_status == processing_status)
        async with self._engine.datastore.session() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(WebhookLog).where(*conditions)
                )
            ).scalar_one()
            result = await session.execute(
                select(WebhookLog)
                .where(*conditions)
                .order_by(WebhookLog.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return list(result.scalars().all()), int(total)
