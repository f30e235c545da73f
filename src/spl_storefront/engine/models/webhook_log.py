"""WebhookLog model: append-only audit of inbound Stripe events."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from spl_storefront.engine.models.base import Base, utcnow
from spl_storefront.engine.status import WebhookProcessingStatus


class WebhookLog(Base):
    """One row per webhook delivery.

    Only ``processing_status``, ``error_message``, ``transaction_id`` and
    ``processed_at`` change after insert. ``processing_status`` describes the
    local handler outcome, not the Stripe object's own status.
    """

    __tablename__ = "webhook_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    processing_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=WebhookProcessingStatus.PENDING,
        index=True,
        comment="pending | processed | failed",
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<WebhookLog id={self.id} type={self.event_type} status={self.processing_status}>"
