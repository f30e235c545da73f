"""Initial schema: transactions, webhook_logs, token_configuration.

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("transaction_uuid", sa.String(36), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer, nullable=False, index=True),
        sa.Column("amount_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("token_amount", sa.Numeric(24, 9), nullable=False),
        sa.Column("token_price_at_purchase", sa.Numeric(18, 8), nullable=False),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True, unique=True),
        sa.Column("recipient_wallet_address", sa.String(44), nullable=False),
        sa.Column("solana_transaction_signature", sa.String(128), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, index=True),
        sa.Column("blockchain_status", sa.String(16), nullable=False, index=True),
        sa.Column("fulfillment_status", sa.String(16), nullable=False),
        sa.Column("blockchain_confirmations", sa.Integer, nullable=False),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column("fulfilled_by", sa.String(64), nullable=True),
        sa.Column("payment_succeeded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transfer_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tokens_sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.String(255), nullable=False, index=True),
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("processing_status", sa.String(16), nullable=False, index=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("transaction_id", sa.Integer, nullable=True, index=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "token_configuration",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("price_per_token", sa.Numeric(18, 8), nullable=False),
        sa.Column("min_purchase_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("max_purchase_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("daily_limit_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_supply", sa.Numeric(30, 9), nullable=True),
        sa.Column("tokens_sold", sa.Numeric(30, 9), nullable=False),
        sa.Column("sale_enabled", sa.Boolean, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, index=True),
        sa.Column("updated_by", sa.String(64), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("token_configuration")
    op.drop_table("webhook_logs")
    op.drop_table("transactions")
