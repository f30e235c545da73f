#!/usr/bin/env python3
"""Storefront operations tool: status repair, treasury health, lookups.

A standalone CLI for operators. It reads the same configuration as the
API server (``STOREFRONT_*`` environment variables, optionally a YAML
file via ``STOREFRONT_CONFIG_PATH``):

    # Repair inconsistent status columns (safe to run repeatedly)
    python -m spl_storefront.tools.storefront_tool reconcile

    # Show what the repair pass would change without writing
    python -m spl_storefront.tools.storefront_tool reconcile --dry-run

    # Check treasury ownership, token balance and SOL for fees
    python -m spl_storefront.tools.storefront_tool check-treasury

    # Print one transaction with any invariant violations
    python -m spl_storefront.tools.storefront_tool tx-status <id>
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spl_storefront.engine.client import StorefrontEngine


async def _with_engine(fn) -> int:  # type: ignore[no-untyped-def]
    from spl_storefront.config.settings import AppConfig
    from spl_storefront.engine.client import StorefrontEngine

    config = AppConfig()
    logging.basicConfig(level=config.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")
    engine = StorefrontEngine(config)
    await engine.initialize()
    try:
        return await fn(engine)
    finally:
        await engine.close()


def _cmd_reconcile(dry_run: bool) -> int:
    """Run the status repair pass and print the report."""

    async def _run(engine: StorefrontEngine) -> int:
        report = await engine.reconciliation_service.run(dry_run=dry_run)

        print("=" * 60)
        print("STATUS REPAIR" + (" (DRY RUN)" if dry_run else ""))
        print("=" * 60)
        print(f"Scanned:  {report.scanned}")
        print(f"Planned:  {len(report.repairs)}")
        print(f"Changed:  {report.changed}")
        if report.repairs:
            print()
            print("-" * 60)
            for r in report.repairs:
                mark = "applied" if r.applied else "planned"
                changes = ", ".join(f"{k}={v}" for k, v in r.changes.items())
                print(f"  #{r.transaction_id:<8} {r.rule:<26} {mark:<8} {changes}")
        if report.errors:
            print()
            print("Errors:")
            for tx_id, err in report.errors.items():
                print(f"  #{tx_id}: {err}")
        if report.remaining:
            print()
            print("Unrepaired invariant violations:")
            for tx_id, problems in report.remaining.items():
                for p in problems:
                    print(f"  #{tx_id}: {p}")
        return 1 if report.errors else 0

    return asyncio.run(_with_engine(_run))


def _cmd_check_treasury() -> int:
    """Print the treasury health as seen by the configured RPC node."""

    async def _run(engine: StorefrontEngine) -> int:
        status = await engine.solana.get_treasury_status()

        print("=" * 60)
        print(f"TREASURY ({engine.config.solana.network})")
        print("=" * 60)
        for key, value in status.to_dict().items():
            print(f"{key:<22} {value}")
        problems = []
        if not status.owner_matches:
            problems.append("token account is not owned by the treasury wallet")
        if status.token_balance <= 0:
            problems.append("token balance is zero")
        if not status.has_fee_balance:
            problems.append("not enough SOL for transaction fees")
        print()
        if problems:
            for p in problems:
                print(f"WARNING: {p}")
            return 1
        print("Treasury OK")
        return 0

    return asyncio.run(_with_engine(_run))


def _cmd_tx_status(tx_id: int) -> int:
    """Print one transaction's status columns."""
    from spl_storefront.engine.status import check_invariants

    async def _run(engine: StorefrontEngine) -> int:
        tx = await engine.transaction_service.get(tx_id)

        print("=" * 60)
        print(f"TRANSACTION {tx.id} ({tx.transaction_uuid})")
        print("=" * 60)
        print(f"User:               {tx.user_id}")
        print(f"Amount:             ${tx.amount_usd} -> {tx.token_amount} tokens")
        print(f"Wallet:             {tx.recipient_wallet_address}")
        print(f"Payment intent:     {tx.stripe_payment_intent_id or '-'}")
        print(f"Status:             {tx.status}")
        print(f"Blockchain status:  {tx.blockchain_status}")
        print(f"Fulfillment status: {tx.fulfillment_status}")
        print(f"Signature:          {tx.solana_transaction_signature or '-'}")
        print(f"Confirmations:      {tx.blockchain_confirmations}")
        if tx.error_message:
            print(f"Error:              {tx.error_message}")
        problems = check_invariants(tx)
        if problems:
            print()
            print("Invariant violations (run 'reconcile' to repair):")
            for p in problems:
                print(f"  - {p}")
            return 1
        return 0

    return asyncio.run(_with_engine(_run))


def main() -> None:
    """CLI entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    cmd = sys.argv[1].lower()

    if cmd == "reconcile":
        sys.exit(_cmd_reconcile(dry_run="--dry-run" in sys.argv[2:]))
    elif cmd == "check-treasury":
        sys.exit(_cmd_check_treasury())
    elif cmd == "tx-status":
        if len(sys.argv) < 3 or not sys.argv[2].isdigit():
            print("Usage: storefront_tool tx-status <id>")
            sys.exit(1)
        sys.exit(_cmd_tx_status(int(sys.argv[2])))
    else:
        print(f"Unknown command: {cmd}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
