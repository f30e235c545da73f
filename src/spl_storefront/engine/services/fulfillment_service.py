"""Fulfillment service: deliver purchased tokens and record proof.

Two paths complete a paid transaction:
- manual: an admin supplies the signature of a transfer made elsewhere
- automated: the treasury sends the tokens via :class:`SolanaService`

Transfer failures move the transaction to ``failed`` and stay there until
an explicit retry.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from spl_storefront.engine.models.base import utcnow
from spl_storefront.engine.models.transaction import Transaction
from spl_storefront.engine.status import (
    BlockchainStatus,
    FulfillmentStatus,
    PaymentStatus,
    blockchain_status_for,
)
from spl_storefront.errors.definitions import (
    ErrInvalidFulfillmentStatus,
    ErrInvalidStatusTransition,
    ErrMissingTransactionHash,
    ErrPaymentNotSucceeded,
    ErrPriorTransferLanded,
    ErrTransactionAlreadyCompleted,
    ErrTransferInProgress,
)

if TYPE_CHECKING:
    from spl_storefront.chain.solana.models import SignatureStatus
    from spl_storefront.engine.client import StorefrontEngine

logger = logging.getLogger(__name__)

_MAX_SIGNATURE_LEN = 128


class FulfillmentService:
    """Token delivery for transactions whose payment has succeeded."""

    def __init__(self, engine: StorefrontEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_pending(self, *, page: int = 1, limit: int = 20) -> tuple[list[Transaction], int]:
        """Paid transactions still waiting for their tokens."""
        return await self._engine.transaction_service.get_transactions(
            status=PaymentStatus.PROCESSING, page=page, limit=limit
        )

    async def stats(self) -> dict[str, Any]:
        """Fulfillment counts for paid transactions and the tokens still owed."""
        async with self._engine.datastore.session() as session:
            counts = await session.execute(
                select(Transaction.fulfillment_status, func.count(Transaction.id))
                .where(Transaction.payment_succeeded_at.is_not(None))
                .group_by(Transaction.fulfillment_status)
            )
            owed = await session.execute(
                select(func.coalesce(func.sum(Transaction.token_amount), 0)).where(
                    Transaction.status == PaymentStatus.PROCESSING
                )
            )
            by_status = {s.value: 0 for s in FulfillmentStatus}
            for status, count in counts.all():
                by_status[status] = int(count)
            tokens_owed = Decimal(str(owed.scalar_one()))
        return {
            "by_fulfillment_status": by_status,
            "awaiting_fulfillment": by_status[FulfillmentStatus.PENDING]
            + by_status[FulfillmentStatus.PROCESSING],
            "tokens_awaiting_delivery": str(tokens_owed),
        }

    # ------------------------------------------------------------------
    # Manual fulfillment
    # ------------------------------------------------------------------

    async def fulfill(
        self,
        tx_id: int,
        *,
        transaction_hash: str,
        notes: str | None = None,
        fulfilled_by: str | None = None,
    ) -> Transaction:
        """Complete a paid transaction with an externally made transfer.

        Args:
            tx_id: Transaction to complete.
            transaction_hash: Signature of the transfer that delivered the tokens.
            notes: Optional admin notes.
            fulfilled_by: Admin identity.

        Raises:
            StorefrontError: ``ErrTransactionNotFound``, ``ErrTransactionAlreadyCompleted``,
                ``ErrPaymentNotSucceeded``, ``ErrTransferInProgress`` or
                ``ErrMissingTransactionHash``. The row is unchanged in every case.
        """
        transaction_hash = (transaction_hash or "").strip()
        if not transaction_hash or len(transaction_hash) > _MAX_SIGNATURE_LEN:
            raise ErrMissingTransactionHash

        tx = await self._engine.transaction_service.get(tx_id)
        self._check_fulfillable(tx)

        now = utcnow()
        values: dict[str, Any] = {
            "blockchain_status": BlockchainStatus.CONFIRMED,
            "solana_transaction_signature": transaction_hash,
            "blockchain_confirmations": max(tx.blockchain_confirmations or 0, 1),
            "tokens_sent_at": now,
            "completed_at": now,
            "error_message": None,
        }
        if notes is not None:
            values["admin_notes"] = notes
        if fulfilled_by is not None:
            values["fulfilled_by"] = fulfilled_by

        updated = await self._engine.transaction_service.transition(
            tx_id,
            PaymentStatus.COMPLETED,
            expected=[PaymentStatus.PROCESSING],
            conditions=[Transaction.transfer_started_at.is_(None)],
            **values,
        )
        if updated is None:
            # Lost a race; report the state that blocked it.
            self._check_fulfillable(await self._engine.transaction_service.get(tx_id))
            raise ErrInvalidStatusTransition
        logger.info(
            "Transaction %d fulfilled manually by %s: %s",
            tx_id,
            fulfilled_by or "admin",
            transaction_hash,
        )
        return updated

    # ------------------------------------------------------------------
    # Automated transfer
    # ------------------------------------------------------------------

    async def transfer(self, tx_id: int, *, fulfilled_by: str | None = None) -> Transaction:
        """Send the purchased tokens from the treasury and complete the transaction.

        The row is claimed with a conditional update before the RPC call and
        no database session is held while waiting for confirmation.

        Raises:
            StorefrontError: If the row can't be claimed (unchanged).
            SolanaError: If the transfer fails; the row is then ``failed``.
        """
        tx = await self._engine.transaction_service.get(tx_id)
        self._check_fulfillable(tx)

        prior = tx.solana_transaction_signature
        if prior:
            await self._check_prior_transfer(tx_id, prior)

        claimed = await self._engine.transaction_service.update_where(
            tx_id,
            [
                Transaction.status == PaymentStatus.PROCESSING,
                Transaction.solana_transaction_signature == prior
                if prior
                else Transaction.solana_transaction_signature.is_(None),
                Transaction.transfer_started_at.is_(None),
                Transaction.blockchain_status.in_(
                    [BlockchainStatus.PENDING, BlockchainStatus.PROCESSING]
                ),
            ],
            blockchain_status=BlockchainStatus.PROCESSING,
            solana_transaction_signature=None,
            transfer_started_at=utcnow(),
            fulfilled_by=fulfilled_by,
        )
        if claimed is None:
            current = await self._engine.transaction_service.get(tx_id)
            self._check_fulfillable(current)
            raise ErrInvalidStatusTransition.with_message(
                f"transaction {tx_id} changed while claiming the transfer; reload and try again"
            )
        logger.info(
            "Transaction %d: sending %s tokens to %s",
            tx_id,
            claimed.token_amount,
            claimed.recipient_wallet_address,
        )

        try:
            with self._engine.metrics.track_transfer():
                result = await self._engine.solana.transfer_tokens(
                    claimed.recipient_wallet_address, Decimal(claimed.token_amount)
                )
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
            signature = getattr(exc, "signature", None)
            failed_values: dict[str, Any] = {
                "blockchain_status": BlockchainStatus.FAILED,
                "error_message": message,
            }
            if signature:
                failed_values["solana_transaction_signature"] = signature
            await self._engine.transaction_service.transition(
                tx_id,
                PaymentStatus.FAILED,
                expected=[PaymentStatus.PROCESSING],
                **failed_values,
            )
            self._engine.metrics.record_transfer("failed")
            logger.warning("Transaction %d: token transfer failed: %s", tx_id, message)
            raise

        self._engine.metrics.record_transfer("confirmed")
        now = utcnow()
        updated = await self._engine.transaction_service.transition(
            tx_id,
            PaymentStatus.COMPLETED,
            expected=[PaymentStatus.PROCESSING],
            blockchain_status=BlockchainStatus.CONFIRMED,
            solana_transaction_signature=result.signature,
            blockchain_confirmations=result.confirmations,
            tokens_sent_at=now,
            completed_at=now,
            error_message=None,
        )
        if updated is None:
            logger.error(
                "Transaction %d: transfer %s confirmed but the row changed meanwhile",
                tx_id,
                result.signature,
            )
            raise ErrInvalidStatusTransition.with_message(
                f"tokens were sent ({result.signature}) but transaction {tx_id} "
                "changed status during the transfer; fulfill it manually"
            )
        logger.info("Transaction %d completed by transfer %s", tx_id, result.signature)
        return updated

    # ------------------------------------------------------------------
    # Admin status changes
    # ------------------------------------------------------------------

    async def update_status(
        self,
        tx_id: int,
        fulfillment_status: str,
        *,
        notes: str | None = None,
        transaction_hash: str | None = None,
        updated_by: str | None = None,
    ) -> Transaction:
        """Set the fulfillment state from the admin panel.

        ``completed`` is the manual fulfillment path and ``failed`` fails the
        transaction. ``pending`` and ``processing`` only move the delivery
        state of a paid transaction.
        """
        try:
            target = FulfillmentStatus(fulfillment_status)
        except ValueError as exc:
            raise ErrInvalidFulfillmentStatus from exc

        if target == FulfillmentStatus.COMPLETED:
            tx = await self._engine.transaction_service.get(tx_id)
            signature = transaction_hash or tx.solana_transaction_signature or ""
            return await self.fulfill(
                tx_id, transaction_hash=signature, notes=notes, fulfilled_by=updated_by
            )

        tx = await self._engine.transaction_service.get(tx_id)
        if tx.status == PaymentStatus.COMPLETED:
            raise ErrTransactionAlreadyCompleted
        if tx.status != PaymentStatus.PROCESSING:
            raise ErrPaymentNotSucceeded

        extra: dict[str, Any] = {}
        if notes is not None:
            extra["admin_notes"] = notes
        if updated_by is not None:
            extra["fulfilled_by"] = updated_by

        if target == FulfillmentStatus.FAILED:
            updated = await self._engine.transaction_service.transition(
                tx_id,
                PaymentStatus.FAILED,
                expected=[PaymentStatus.PROCESSING],
                blockchain_status=BlockchainStatus.FAILED,
                error_message=notes or "Fulfillment marked failed by admin",
                **extra,
            )
        else:
            updated = await self._engine.transaction_service.update_where(
                tx_id,
                [
                    Transaction.status == PaymentStatus.PROCESSING,
                    Transaction.transfer_started_at.is_(None),
                ],
                blockchain_status=blockchain_status_for(target),
                **extra,
            )
            if updated is None and tx.transfer_started_at is not None:
                raise ErrTransferInProgress
        if updated is None:
            raise ErrInvalidStatusTransition
        logger.info("Transaction %d fulfillment -> %s by %s", tx_id, target, updated_by or "admin")
        return updated

    async def refresh_confirmations(self, tx_id: int) -> tuple[Transaction, SignatureStatus]:
        """Re-read the confirmation count of the transaction's transfer from the chain."""
        tx = await self._engine.transaction_service.get(tx_id)
        if not tx.solana_transaction_signature:
            raise ErrMissingTransactionHash.with_message(
                f"transaction {tx_id} has no transfer signature"
            )
        status = await self._engine.solana.get_signature_status(tx.solana_transaction_signature)
        if not status.found:
            logger.warning(
                "Transaction %d: signature %s not found on chain",
                tx_id,
                tx.solana_transaction_signature,
            )
            return tx, status
        if status.error:
            logger.warning(
                "Transaction %d: transfer %s failed on chain: %s",
                tx_id,
                tx.solana_transaction_signature,
                status.error,
            )
        updated = await self._engine.transaction_service.update_where(
            tx_id,
            [Transaction.solana_transaction_signature == tx.solana_transaction_signature],
            blockchain_confirmations=status.confirmations,
        )
        return updated or tx, status

    async def _check_prior_transfer(self, tx_id: int, signature: str) -> None:
        """Refuse a new transfer if the signature kept from an earlier attempt landed."""
        status = await self._engine.solana.get_signature_status(signature)
        if status.succeeded:
            logger.warning(
                "Transaction %d: earlier transfer %s landed on chain; not sending again",
                tx_id,
                signature,
            )
            raise ErrPriorTransferLanded.with_message(
                f"earlier transfer {signature} landed on chain; "
                "fulfill the transaction with that signature"
            )
        logger.info(
            "Transaction %d: earlier transfer %s %s; sending a new one",
            tx_id,
            signature,
            f"failed ({status.error})" if status.found else "not found on chain",
        )

    @staticmethod
    def _check_fulfillable(tx: Transaction) -> None:
        if tx.status == PaymentStatus.COMPLETED:
            raise ErrTransactionAlreadyCompleted
        if tx.status != PaymentStatus.PROCESSING:
            raise ErrPaymentNotSucceeded
        if tx.transfer_started_at is not None:
            raise ErrTransferInProgress
