"""Transaction model: one row per purchase attempt."""

from __future__ import annotations

import uuid
from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]
from decimal import Decimal  # noqa: TC003

from sqlalchemy import DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from spl_storefront.engine.models.base import Base, TimestampMixin
from spl_storefront.engine.status import BlockchainStatus, FulfillmentStatus, PaymentStatus


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Transaction(Base, TimestampMixin):
    """A token purchase: Stripe payment, SPL transfer and their statuses.

    ``status`` is the authoritative lifecycle. ``blockchain_status`` tracks
    the token transfer and ``fulfillment_status`` is always derived from it
    (see :func:`spl_storefront.engine.status.fulfillment_status_for`).
    Rows are never deleted.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_uuid: Mapped[str] = mapped_column(
        String(36), nullable=False, unique=True, default=_new_uuid, comment="Display UUID"
    )
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    amount_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    token_amount: Mapped[Decimal] = mapped_column(Numeric(24, 9), nullable=False)
    token_price_at_purchase: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)

    stripe_payment_intent_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, comment="Set once, never reassigned"
    )
    recipient_wallet_address: Mapped[str] = mapped_column(String(44), nullable=False)
    solana_transaction_signature: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
        comment="pending | processing | completed | failed",
    )
    blockchain_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=BlockchainStatus.PENDING,
        index=True,
        comment="pending | processing | confirmed | failed",
    )
    fulfillment_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=FulfillmentStatus.PENDING,
        comment="derived from blockchain_status",
    )
    blockchain_confirmations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    fulfilled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    payment_succeeded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transfer_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Set while an automated transfer holds the row"
    )
    tokens_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} status={self.status} "
            f"blockchain_status={self.blockchain_status}>"
        )
