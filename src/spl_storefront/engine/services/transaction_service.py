"""Transaction service: creation, queries, retries and status transitions.

Every status change goes through :meth:`TransactionService.transition` or
:meth:`TransactionService.update_where`, which issue a single conditional
``UPDATE ... WHERE id = ? AND status IN (...)``. The affected row count
decides whether the change happened, so concurrent callers (duplicate
webhooks, double-clicked admin actions) apply each edge at most once.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update

from spl_storefront.engine.models.base import utcnow
from spl_storefront.engine.models.transaction import Transaction
from spl_storefront.engine.status import (
    BlockchainStatus,
    PaymentStatus,
    can_transition,
    fulfillment_status_for,
    sources_for,
)
from spl_storefront.errors.definitions import (
    ErrInvalidStatusTransition,
    ErrTransactionNotFound,
    ErrTransactionNotRetryable,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

    from spl_storefront.engine.client import StorefrontEngine

logger = logging.getLogger(__name__)

# Statuses that count against the daily spending limit
_SPENDING_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.COMPLETED)

MAX_PAGE_SIZE = 100

EXPORT_COLUMNS = (
    "id",
    "transaction_uuid",
    "user_id",
    "created_at",
    "amount_usd",
    "token_amount",
    "token_price_at_purchase",
    "status",
    "blockchain_status",
    "fulfillment_status",
    "recipient_wallet_address",
    "stripe_payment_intent_id",
    "solana_transaction_signature",
    "blockchain_confirmations",
    "error_message",
    "completed_at",
)


class TransactionService:
    """Business logic for the purchase record and its status columns."""

    def __init__(self, engine: StorefrontEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        *,
        user_id: int,
        amount_usd: Decimal,
        token_amount: Decimal,
        token_price: Decimal,
        wallet_address: str,
    ) -> Transaction:
        """Persist a new ``pending`` transaction."""
        async with self._engine.datastore.session() as session:
            tx = Transaction(
                user_id=user_id,
                amount_usd=amount_usd,
                token_amount=token_amount,
                token_price_at_purchase=token_price,
                recipient_wallet_address=wallet_address,
                status=PaymentStatus.PENDING,
                blockchain_status=BlockchainStatus.PENDING,
                fulfillment_status=fulfillment_status_for(BlockchainStatus.PENDING),
            )
            session.add(tx)
            await session.commit()
            await session.refresh(tx)
        logger.info(
            "Created transaction %d for user %d: $%s -> %s tokens",
            tx.id,
            user_id,
            amount_usd,
            token_amount,
        )
        return tx

    async def attach_payment_intent(self, tx_id: int, intent_id: str) -> Transaction:
        """Record the provider intent id. It can be set only once.

        Raises:
            StorefrontError: ``ErrInvalidStatusTransition`` if the row already
                has an intent or is no longer pending.
        """
        tx = await self.update_where(
            tx_id,
            [
                Transaction.stripe_payment_intent_id.is_(None),
                Transaction.status == PaymentStatus.PENDING,
            ],
            stripe_payment_intent_id=intent_id,
        )
        if tx is None:
            raise ErrInvalidStatusTransition.with_message(
                f"transaction {tx_id} already has a payment intent"
            )
        return tx

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, tx_id: int, *, user_id: int | None = None) -> Transaction:
        """Return a transaction by id, optionally scoped to a user.

        Raises:
            StorefrontError: ``ErrTransactionNotFound``.
        """
        async with self._engine.datastore.session() as session:
            tx = await session.get(Transaction, tx_id)
        if tx is None or (user_id is not None and tx.user_id != user_id):
            raise ErrTransactionNotFound
        return tx

    async def get_by_payment_intent(self, intent_id: str) -> Transaction | None:
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(Transaction).where(Transaction.stripe_payment_intent_id == intent_id)
            )
            return result.scalar_one_or_none()

    async def get_transactions(
        self,
        *,
        user_id: int | None = None,
        status: str | None = None,
        fulfillment_status: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Transaction], int]:
        """Return one page of transactions (newest first) and the total count."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        conditions = _filters(user_id=user_id, status=status, fulfillment_status=fulfillment_status)

        async with self._engine.datastore.session() as session:
            total = (
                await session.execute(
                    select(func.count()).select_from(Transaction).where(*conditions)
                )
            ).scalar_one()
            result = await session.execute(
                select(Transaction)
                .where(*conditions)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return list(result.scalars().all()), int(total)

    async def get_all(
        self, *, user_id: int | None = None, status: str | None = None
    ) -> Sequence[Transaction]:
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(Transaction)
                .where(*_filters(user_id=user_id, status=status))
                .order_by(Transaction.id)
            )
            return result.scalars().all()

    async def stats(self, *, user_id: int | None = None) -> dict[str, Any]:
        """Count and sum transactions by status."""
        conditions = _filters(user_id=user_id)
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(
                    Transaction.status,
                    func.count(Transaction.id),
                    func.coalesce(func.sum(Transaction.amount_usd), 0),
                    func.coalesce(func.sum(Transaction.token_amount), 0),
                )
                .where(*conditions)
                .group_by(Transaction.status)
            )
            rows = result.all()

        by_status = {s.value: 0 for s in PaymentStatus}
        total_count = 0
        total_spent = Decimal(0)
        tokens_purchased = Decimal(0)
        for status, count, usd, tokens in rows:
            by_status[status] = int(count)
            total_count += int(count)
            if status == PaymentStatus.COMPLETED:
                total_spent += Decimal(str(usd))
                tokens_purchased += Decimal(str(tokens))
        return {
            "total_transactions": total_count,
            "by_status": by_status,
            "total_spent_usd": str(total_spent),
            "total_tokens_purchased": str(tokens_purchased),
        }

    async def daily_spending(self, user_id: int, *, now: datetime | None = None) -> Decimal:
        """Sum of today's (UTC) pending, processing and completed purchases."""
        now = now or datetime.now(tz=UTC)
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        async with self._engine.datastore.session() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(Transaction.amount_usd), 0)).where(
                    Transaction.user_id == user_id,
                    Transaction.status.in_(_SPENDING_STATUSES),
                    Transaction.created_at >= start,
                )
            )
            return Decimal(str(result.scalar_one()))

    async def export_csv(self, *, user_id: int | None = None, status: str | None = None) -> str:
        """Render matching transactions as CSV."""
        rows = await self.get_all(user_id=user_id, status=status)
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(EXPORT_COLUMNS)
        for tx in rows:
            writer.writerow([_csv_value(getattr(tx, col)) for col in EXPORT_COLUMNS])
        return buf.getvalue()

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def update_where(
        self,
        tx_id: int,
        conditions: Iterable[ColumnElement[bool]],
        *,
        session: AsyncSession | None = None,
        **values: Any,
    ) -> Transaction | None:
        """Apply *values* to row *tx_id* only if all *conditions* hold.

        ``fulfillment_status`` is derived whenever ``blockchain_status`` is
        written and can't be set directly.

        Returns:
            The refreshed row, or None if no row matched.
        """
        if "fulfillment_status" in values:
            msg = "fulfillment_status is derived from blockchain_status"
            raise ValueError(msg)
        if "blockchain_status" in values:
            values["fulfillment_status"] = fulfillment_status_for(values["blockchain_status"])
        values.setdefault("updated_at", utcnow())

        stmt = (
            update(Transaction)
            .where(Transaction.id == tx_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if session is not None:
            return await self._execute_update(session, tx_id, stmt)
        async with self._engine.datastore.session() as s:
            tx = await self._execute_update(s, tx_id, stmt)
            await s.commit()
            return tx

    async def transition(
        self,
        tx_id: int,
        target: PaymentStatus,
        *,
        expected: Iterable[PaymentStatus] | None = None,
        conditions: Iterable[ColumnElement[bool]] = (),
        **values: Any,
    ) -> Transaction | None:
        """Move ``status`` to *target* if the row is currently in *expected*.

        *expected* defaults to every status the transition table allows
        into *target*. Reaching ``completed`` also adds the row's tokens to
        the sale's ``tokens_sold`` counter in the same database transaction.

        Returns:
            The refreshed row, or None if the row was not in an expected
            status (or didn't match *conditions*).
        """
        sources = list(expected) if expected is not None else sources_for(target)
        for source in sources:
            if not can_transition(source, target):
                msg = f"illegal transition {source} -> {target}"
                raise ValueError(msg)

        async with self._engine.datastore.session() as session:
            tx = await self.update_where(
                tx_id,
                [Transaction.status.in_(sources), *conditions],
                session=session,
                status=target,
                **values,
            )
            if tx is not None and target == PaymentStatus.COMPLETED:
                await self._engine.token_config_service.add_tokens_sold(
                    session, Decimal(tx.token_amount)
                )
            await session.commit()

        if tx is None:
            logger.info("Transaction %d: no transition to %s (status guard not met)", tx_id, target)
            return None
        logger.info(
            "Transaction %d: -> %s (blockchain_status=%s)", tx_id, target, tx.blockchain_status
        )
        self._engine.metrics.record_transition(target)
        return tx

    async def retry(self, tx_id: int, *, user_id: int | None = None) -> Transaction:
        """Return a failed transaction to the lifecycle.

        A failed payment goes back to ``pending`` (same intent); a failed
        transfer after a captured payment goes back to ``processing`` with
        ``blockchain_status = pending``. A signature kept from an unconfirmed
        transfer stays on the row; the next transfer checks it on chain first.

        Raises:
            StorefrontError: ``ErrTransactionNotFound`` or ``ErrTransactionNotRetryable``.
        """
        tx = await self.get(tx_id, user_id=user_id)
        if tx.status != PaymentStatus.FAILED:
            raise ErrTransactionNotRetryable
        target = PaymentStatus.PROCESSING if tx.payment_succeeded_at else PaymentStatus.PENDING
        updated = await self.transition(
            tx_id,
            target,
            expected=[PaymentStatus.FAILED],
            blockchain_status=BlockchainStatus.PENDING,
            error_message=None,
            transfer_started_at=None,
        )
        if updated is None:
            raise ErrTransactionNotRetryable
        logger.info("Transaction %d retried -> %s", tx_id, target)
        return updated

    @staticmethod
    async def _execute_update(session: AsyncSession, tx_id: int, stmt: Any) -> Transaction | None:
        result = await session.execute(stmt)
        if result.rowcount != 1:
            return None
        return await session.get(Transaction, tx_id, populate_existing=True)


def _filters(
    *,
    user_id: int | None = None,
    status: str | None = None,
    fulfillment_status: str | None = None,
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if user_id is not None:
        conditions.append(Transaction.user_id == user_id)
    if status:
        conditions.append(Transaction.status == status)
    if fulfillment_status:
        conditions.append(Transaction.fulfillment_status == fulfillment_status)
    return conditions


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return value
