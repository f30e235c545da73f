"""Reconciliation service: repair inconsistent status columns.

Scans every transaction and applies these repairs:

========================================  ==================================
Row state                                 Repair
========================================  ==================================
completed, has signature, not confirmed   blockchain_status = confirmed
processing, blockchain pending            blockchain_status = processing
failed, blockchain pending                blockchain_status = failed
fulfillment_status out of step            re-derived from blockchain_status
========================================  ==================================

Each repair is a conditional update on the state it was planned from, so
the pass is safe to run concurrently with live traffic and running it a
second time changes nothing. Rows that break an invariant no rule can fix
(e.g. completed without a signature) are reported, not modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from spl_storefront.engine.models.transaction import Transaction
from spl_storefront.engine.status import (
    BlockchainStatus,
    PaymentStatus,
    check_invariants,
    fulfillment_status_for,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from spl_storefront.engine.client import StorefrontEngine

logger = logging.getLogger(__name__)

_BATCH_SIZE = 500


@dataclass
class RowRepair:
    """One planned or applied change."""

    transaction_id: int
    rule: str
    changes: dict[str, Any]
    applied: bool = False


@dataclass
class ReconcileReport:
    """Summary of one repair pass."""

    dry_run: bool
    scanned: int = 0
    repairs: list[RowRepair] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)
    remaining: dict[int, list[str]] = field(default_factory=dict)

    @property
    def changed(self) -> int:
        return sum(1 for r in self.repairs if r.applied)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "scanned": self.scanned,
            "changed": self.changed,
            "planned": len(self.repairs),
            "repairs": [
                {
                    "transaction_id": r.transaction_id,
                    "rule": r.rule,
                    "changes": {k: str(v) for k, v in r.changes.items()},
                    "applied": r.applied,
                }
                for r in self.repairs
            ],
            "errors": {str(k): v for k, v in self.errors.items()},
            "remaining_issues": {str(k): v for k, v in self.remaining.items()},
        }


def plan_repair(tx: Transaction) -> tuple[str, dict[str, Any], list[Any]] | None:
    """Return ``(rule, values, guard conditions)`` for *tx*, or None if it is consistent."""
    status = tx.status
    chain = tx.blockchain_status
    guard = [
        Transaction.status == status,
        Transaction.blockchain_status == chain,
    ]

    if (
        status == PaymentStatus.COMPLETED
        and tx.solana_transaction_signature
        and chain != BlockchainStatus.CONFIRMED
    ):
        return (
            "completed-with-signature",
            {
                "blockchain_status": BlockchainStatus.CONFIRMED,
                "blockchain_confirmations": max(tx.blockchain_confirmations or 0, 1),
            },
            guard,
        )
    if status == PaymentStatus.PROCESSING and chain == BlockchainStatus.PENDING:
        return "processing-mirror", {"blockchain_status": BlockchainStatus.PROCESSING}, guard
    if status == PaymentStatus.FAILED and chain == BlockchainStatus.PENDING:
        return "failed-mirror", {"blockchain_status": BlockchainStatus.FAILED}, guard

    try:
        expected = fulfillment_status_for(chain)
    except ValueError:
        return None
    if tx.fulfillment_status != expected:
        return (
            "fulfillment-view",
            {"blockchain_status": BlockchainStatus(chain)},
            [*guard, Transaction.fulfillment_status == tx.fulfillment_status],
        )
    return None


class ReconciliationService:
    """Idempotent, on-demand status repair pass."""

    def __init__(self, engine: StorefrontEngine) -> None:
        self._engine = engine

    async def run(self, *, dry_run: bool = False) -> ReconcileReport:
        """Scan all transactions and repair what the rules cover.

        A failure on one row is logged and recorded in the report; the scan
        continues with the next row.
        """
        report = ReconcileReport(dry_run=dry_run)
        async for tx in self._scan():
            report.scanned += 1
            plan = plan_repair(tx)
            if plan is not None:
                rule, values, guard = plan
                repair = RowRepair(transaction_id=tx.id, rule=rule, changes=values)
                report.repairs.append(repair)
                if dry_run:
                    logger.info("[dry-run] Transaction %d: %s %s", tx.id, rule, values)
                else:
                    try:
                        updated = await self._engine.transaction_service.update_where(
                            tx.id, guard, **values
                        )
                    except Exception as exc:
                        logger.exception("Transaction %d: repair %s failed", tx.id, rule)
                        report.errors[tx.id] = str(exc) or exc.__class__.__name__
                        continue
                    if updated is None:
                        logger.info("Transaction %d changed during scan; skipped %s", tx.id, rule)
                        continue
                    repair.applied = True
                    tx = updated
                    logger.info(
                        "Transaction %d repaired (%s): status=%s blockchain_status=%s",
                        tx.id,
                        rule,
                        tx.status,
                        tx.blockchain_status,
                    )

            problems = check_invariants(tx)
            if problems and not (dry_run and plan is not None):
                report.remaining[tx.id] = problems

        self._engine.metrics.record_repaired(report.changed)
        logger.info(
            "Reconciliation %s: scanned=%d changed=%d planned=%d errors=%d remaining=%d",
            "dry-run" if dry_run else "complete",
            report.scanned,
            report.changed,
            len(report.repairs),
            len(report.errors),
            len(report.remaining),
        )
        return report

    async def _scan(self) -> AsyncIterator[Transaction]:
        last_id = 0
        while True:
            async with self._engine.datastore.session() as session:
                result = await session.execute(
                    select(Transaction)
                    .where(Transaction.id > last_id)
                    .order_by(Transaction.id)
                    .limit(_BATCH_SIZE)
                )
                batch = list(result.scalars().all())
            if not batch:
                return
            for tx in batch:
                yield tx
            last_id = batch[-1].id
