"""Tests for AppConfig loading from defaults, environment and YAML."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from spl_storefront.config.settings import (
    AppConfig,
    Commitment,
    DatabaseEngine,
    SolanaNetwork,
)

if TYPE_CHECKING:
    from pathlib import Path

    import pytest


class TestDefaults:
    def test_top_level(self) -> None:
        cfg = AppConfig()
        assert cfg.debug is False
        assert cfg.log_level == "info"
        assert cfg.admin_api_key == ""

    def test_sections(self) -> None:
        cfg = AppConfig()
        assert cfg.server.port == 5000
        assert cfg.db.engine == DatabaseEngine.SQLITE
        assert cfg.db.dsn.startswith("sqlite+aiosqlite://")
        assert cfg.stripe.currency == "usd"
        assert cfg.solana.network == SolanaNetwork.DEVNET
        assert cfg.solana.commitment == Commitment.CONFIRMED
        assert cfg.metrics.enabled is True

    def test_sale_fallbacks(self) -> None:
        sale = AppConfig().sale
        assert sale.price_per_token == Decimal("0.50")
        assert sale.min_purchase_usd == Decimal("10")
        assert sale.max_purchase_usd == Decimal("10000")
        assert sale.daily_limit_usd == Decimal("5000")


class TestEnvironment:
    def test_top_level_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STOREFRONT_ADMIN_API_KEY", "secret")
        monkeypatch.setenv("STOREFRONT_LOG_LEVEL", "debug")
        cfg = AppConfig()
        assert cfg.admin_api_key == "secret"
        assert cfg.log_level == "debug"

    def test_nested_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STOREFRONT_SERVER__PORT", "8081")
        monkeypatch.setenv("STOREFRONT_STRIPE__WEBHOOK_SECRET", "whsec_env")
        monkeypatch.setenv("STOREFRONT_SOLANA__NETWORK", "mainnet-beta")
        cfg = AppConfig()
        assert cfg.server.port == 8081
        assert cfg.stripe.webhook_secret == "whsec_env"
        assert cfg.solana.network == SolanaNetwork.MAINNET


class TestYaml:
    def test_loads_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "storefront.yaml"
        path.write_text(
            "log_level: warning\n"
            "server:\n  port: 8080\n"
            "sale:\n  price_per_token: '0.25'\n",
            encoding="utf-8",
        )
        cfg = AppConfig.from_yaml(path)
        assert cfg.log_level == "warning"
        assert cfg.server.port == 8080
        assert cfg.sale.price_per_token == Decimal("0.25")

    def test_env_wins_over_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "storefront.yaml"
        path.write_text("server:\n  host: 127.0.0.1\n  port: 8080\n", encoding="utf-8")
        monkeypatch.setenv("STOREFRONT_SERVER__PORT", "9000")
        cfg = AppConfig.from_yaml(path)
        assert cfg.server.port == 9000
        assert cfg.server.host == "127.0.0.1"

    def test_missing_file(self, tmp_path: Path) -> None:
        cfg = AppConfig.from_yaml(tmp_path / "nope.yaml")
        assert cfg.server.port == 5000

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert AppConfig.from_yaml(path).log_level == "info"
