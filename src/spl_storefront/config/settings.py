"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``STOREFRONT_``, nested via ``__``)
2. YAML config file (``STOREFRONT_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


class SolanaNetwork(enum.StrEnum):
    """Solana cluster the treasury lives on."""

    DEVNET = "devnet"
    TESTNET = "testnet"
    MAINNET = "mainnet-beta"


class Commitment(enum.StrEnum):
    """Solana commitment level used for reads and confirmation."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 5000


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite, postgresql or mysql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./storefront.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class StripeConfig(BaseSettings):
    """Stripe payment provider settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_STRIPE__",
        case_sensitive=False,
    )

    secret_key: str = ""
    webhook_secret: str = ""
    currency: str = "usd"
    webhook_tolerance: int = 300


class SolanaConfig(BaseSettings):
    """Solana RPC and treasury settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_SOLANA__",
        case_sensitive=False,
    )

    rpc_url: str = "https://api.devnet.solana.com"
    network: SolanaNetwork = SolanaNetwork.DEVNET
    commitment: Commitment = Commitment.CONFIRMED
    treasury_private_key: str = Field(
        default="",
        description="Treasury keypair as a JSON byte array or base58 secret key",
    )
    token_mint: str = ""
    treasury_token_account: str = ""
    token_decimals: int = 9
    min_sol_balance_lamports: int = 10_000_000
    confirm_timeout_seconds: float = 60.0
    request_timeout_seconds: float = 30.0


class SaleConfig(BaseSettings):
    """Fallback sale parameters used until a token configuration row exists."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_SALE__",
        case_sensitive=False,
    )

    price_per_token: Decimal = Decimal("0.50")
    min_purchase_usd: Decimal = Decimal("10")
    max_purchase_usd: Decimal = Decimal("10000")
    daily_limit_usd: Decimal = Decimal("5000")


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``STOREFRONT_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    log_level: str = "info"
    admin_api_key: str = ""
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    stripe: StripeConfig = Field(default_factory=StripeConfig)
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    sale: SaleConfig = Field(default_factory=SaleConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
