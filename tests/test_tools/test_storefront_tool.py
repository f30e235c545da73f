"""Tests for the storefront operations CLI."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import update

from spl_storefront.chain.solana.models import TreasuryStatus
from spl_storefront.config.settings import AppConfig
from spl_storefront.engine.client import StorefrontEngine
from spl_storefront.engine.models.transaction import Transaction
from spl_storefront.tools import storefront_tool

WALLET = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest.fixture
def db_env(tmp_path, monkeypatch):
    """Point the CLI at a throwaway SQLite file."""
    monkeypatch.setenv("STOREFRONT_DB__ENGINE", "sqlite")
    monkeypatch.setenv("STOREFRONT_DB__DSN", f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    monkeypatch.setenv("STOREFRONT_LOG_LEVEL", "warning")


def _seed(**values) -> int:
    """Insert one transaction (optionally with raw column overrides)."""

    async def _run() -> int:
        engine = StorefrontEngine(AppConfig())
        await engine.initialize()
        try:
            tx = await engine.transaction_service.create(
                user_id=1,
                amount_usd=Decimal("25.00"),
                token_amount=Decimal(50),
                token_price=Decimal("0.50"),
                wallet_address=WALLET,
            )
            if values:
                async with engine.datastore.session() as session:
                    await session.execute(
                        update(Transaction).where(Transaction.id == tx.id).values(**values)
                    )
                    await session.commit()
            return tx.id
        finally:
            await engine.close()

    return asyncio.run(_run())


def _run_main(monkeypatch, *args: str) -> int:
    monkeypatch.setattr("sys.argv", ["storefront_tool", *args])
    with pytest.raises(SystemExit) as exc_info:
        storefront_tool.main()
    return exc_info.value.code


class TestUsage:
    def test_no_args_prints_usage(self, monkeypatch, capsys):
        assert _run_main(monkeypatch) == 1
        assert "check-treasury" in capsys.readouterr().out

    def test_unknown_command(self, monkeypatch, capsys):
        assert _run_main(monkeypatch, "frobnicate") == 1
        assert "Unknown command: frobnicate" in capsys.readouterr().out

    def test_tx_status_needs_numeric_id(self, monkeypatch, capsys):
        assert _run_main(monkeypatch, "tx-status", "abc") == 1
        assert "Usage" in capsys.readouterr().out


class TestReconcile:
    def test_dry_run_then_apply(self, db_env, monkeypatch, capsys):
        tx_id = _seed(status="processing", fulfillment_status="processing")

        assert _run_main(monkeypatch, "reconcile", "--dry-run") == 0
        out = capsys.readouterr().out
        assert "STATUS REPAIR (DRY RUN)" in out
        assert f"#{tx_id}" in out
        assert "planned" in out

        assert _run_main(monkeypatch, "reconcile") == 0
        out = capsys.readouterr().out
        assert "Changed:  1" in out

        assert _run_main(monkeypatch, "reconcile") == 0
        assert "Changed:  0" in capsys.readouterr().out

    def test_empty_database(self, db_env, monkeypatch, capsys):
        assert _run_main(monkeypatch, "reconcile") == 0
        assert "Scanned:  0" in capsys.readouterr().out


class TestTxStatus:
    def test_consistent(self, db_env, monkeypatch, capsys):
        tx_id = _seed()
        assert _run_main(monkeypatch, "tx-status", str(tx_id)) == 0
        out = capsys.readouterr().out
        assert f"TRANSACTION {tx_id}" in out
        assert WALLET in out

    def test_reports_violations(self, db_env, monkeypatch, capsys):
        tx_id = _seed(status="completed", blockchain_status="confirmed")
        assert _run_main(monkeypatch, "tx-status", str(tx_id)) == 1
        assert "Invariant violations" in capsys.readouterr().out


class TestCheckTreasury:
    def _patch_engine(self, monkeypatch, status: TreasuryStatus) -> None:
        engine = SimpleNamespace(
            config=AppConfig(),
            solana=SimpleNamespace(get_treasury_status=AsyncMock(return_value=status)),
        )

        async def _fake_with_engine(fn):
            return await fn(engine)

        monkeypatch.setattr(storefront_tool, "_with_engine", _fake_with_engine)

    def _status(self, **overrides) -> TreasuryStatus:
        values = {
            "wallet": "Treasury111",
            "token_account": "TreasuryAta111",
            "owner": "Treasury111",
            "owner_matches": True,
            "sol_balance_lamports": 1_000_000_000,
            "token_balance": Decimal(500),
            "decimals": 9,
            "min_sol_balance_lamports": 10_000_000,
        }
        values.update(overrides)
        return TreasuryStatus(**values)

    def test_healthy(self, monkeypatch, capsys):
        self._patch_engine(monkeypatch, self._status())
        assert _run_main(monkeypatch, "check-treasury") == 0
        assert "Treasury OK" in capsys.readouterr().out

    def test_warnings(self, monkeypatch, capsys):
        self._patch_engine(
            monkeypatch,
            self._status(owner="Someone", owner_matches=False, sol_balance_lamports=5),
        )
        assert _run_main(monkeypatch, "check-treasury") == 1
        out = capsys.readouterr().out
        assert "not owned by the treasury wallet" in out
        assert "not enough SOL" in out
