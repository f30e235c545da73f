"""Token configuration service: price, purchase limits, supply counters.

The active ``token_configuration`` row is read on every request; there is
no in-process cache. Updates insert a new row and deactivate the old one,
so earlier prices stay on record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update

from spl_storefront.engine.models.token_config import TokenConfig
from spl_storefront.errors.definitions import ErrInvalidTokenConfig

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from spl_storefront.engine.client import StorefrontEngine

logger = logging.getLogger(__name__)

_DECIMAL_FIELDS = (
    "price_per_token",
    "min_purchase_usd",
    "max_purchase_usd",
    "daily_limit_usd",
    "total_supply",
)
_UPDATABLE_FIELDS = (*_DECIMAL_FIELDS, "sale_enabled")


@dataclass
class SaleTerms:
    """Effective sale parameters, from the active row or the configured defaults."""

    price_per_token: Decimal
    min_purchase_usd: Decimal
    max_purchase_usd: Decimal
    daily_limit_usd: Decimal
    total_supply: Decimal | None = None
    tokens_sold: Decimal = Decimal(0)
    sale_enabled: bool = True
    config_id: int | None = None
    updated_by: str | None = None
    updated_at: datetime | None = None

    @property
    def remaining_supply(self) -> Decimal | None:
        if self.total_supply is None:
            return None
        return self.total_supply - self.tokens_sold

    @classmethod
    def from_model(cls, row: TokenConfig) -> SaleTerms:
        return cls(
            price_per_token=Decimal(row.price_per_token),
            min_purchase_usd=Decimal(row.min_purchase_usd),
            max_purchase_usd=Decimal(row.max_purchase_usd),
            daily_limit_usd=Decimal(row.daily_limit_usd),
            total_supply=Decimal(row.total_supply) if row.total_supply is not None else None,
            tokens_sold=Decimal(row.tokens_sold or 0),
            sale_enabled=row.sale_enabled,
            config_id=row.id,
            updated_by=row.updated_by,
            updated_at=row.updated_at,
        )


class TokenConfigService:
    """Reads and updates the single active token configuration."""

    def __init__(self, engine: StorefrontEngine) -> None:
        self._engine = engine

    async def get_active(self, session: AsyncSession | None = None) -> TokenConfig | None:
        """Return the active configuration row, or None if none exists."""
        stmt = (
            select(TokenConfig)
            .where(TokenConfig.is_active.is_(True))
            .order_by(TokenConfig.id.desc())
            .limit(1)
        )
        if session is not None:
            return (await session.execute(stmt)).scalar_one_or_none()
        async with self._engine.datastore.session() as s:
            return (await s.execute(stmt)).scalar_one_or_none()

    async def get_terms(self) -> SaleTerms:
        """Return the effective sale terms."""
        row = await self.get_active()
        if row is not None:
            return SaleTerms.from_model(row)
        sale = self._engine.config.sale
        return SaleTerms(
            price_per_token=sale.price_per_token,
            min_purchase_usd=sale.min_purchase_usd,
            max_purchase_usd=sale.max_purchase_usd,
            daily_limit_usd=sale.daily_limit_usd,
        )

    async def update(self, changes: dict[str, Any], *, updated_by: str | None = None) -> SaleTerms:
        """Replace the active configuration with *changes* applied.

        Unspecified fields keep their current value; ``tokens_sold`` always
        carries over.

        Raises:
            StorefrontError: ``ErrInvalidTokenConfig`` if the result is inconsistent.
        """
        current = await self.get_terms()
        values = _normalize(changes)
        merged = {
            "price_per_token": values.get("price_per_token", current.price_per_token),
            "min_purchase_usd": values.get("min_purchase_usd", current.min_purchase_usd),
            "max_purchase_usd": values.get("max_purchase_usd", current.max_purchase_usd),
            "daily_limit_usd": values.get("daily_limit_usd", current.daily_limit_usd),
            "total_supply": values.get("total_supply", current.total_supply),
            "sale_enabled": values.get("sale_enabled", current.sale_enabled),
        }
        _validate(merged, tokens_sold=current.tokens_sold)

        async with self._engine.datastore.session() as session:
            active = await self.get_active(session)
            tokens_sold = Decimal(active.tokens_sold or 0) if active is not None else Decimal(0)
            await session.execute(
                update(TokenConfig).where(TokenConfig.is_active.is_(True)).values(is_active=False)
            )
            row = TokenConfig(
                **merged,
                tokens_sold=tokens_sold,
                is_active=True,
                updated_by=updated_by,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)

        logger.info(
            "Token configuration %d activated by %s: price=%s sale_enabled=%s",
            row.id,
            updated_by or "system",
            row.price_per_token,
            row.sale_enabled,
        )
        return SaleTerms.from_model(row)

    async def add_tokens_sold(self, session: AsyncSession, amount: Decimal) -> None:
        """Add *amount* to the active row's ``tokens_sold`` inside *session*."""
        await session.execute(
            update(TokenConfig)
            .where(TokenConfig.is_active.is_(True))
            .values(tokens_sold=TokenConfig.tokens_sold + amount)
        )


def _normalize(changes: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, value in changes.items():
        if key not in _UPDATABLE_FIELDS:
            raise ErrInvalidTokenConfig.with_message(f"unknown token configuration field: {key}")
        if key == "sale_enabled":
            values[key] = bool(value)
        elif value is None and key == "total_supply":
            values[key] = None
        else:
            try:
                values[key] = Decimal(str(value))
            except (InvalidOperation, ValueError) as exc:
                raise ErrInvalidTokenConfig.with_message(f"{key} must be a number") from exc
    return values


def _validate(values: dict[str, Any], *, tokens_sold: Decimal) -> None:
    if values["price_per_token"] <= 0:
        raise ErrInvalidTokenConfig.with_message("price_per_token must be positive")
    if values["min_purchase_usd"] <= 0:
        raise ErrInvalidTokenConfig.with_message("min_purchase_usd must be positive")
    if values["max_purchase_usd"] < values["min_purchase_usd"]:
        raise ErrInvalidTokenConfig.with_message(
            "max_purchase_usd must not be below min_purchase_usd"
        )
    if values["daily_limit_usd"] < values["min_purchase_usd"]:
        raise ErrInvalidTokenConfig.with_message(
            "daily_limit_usd must not be below min_purchase_usd"
        )
    supply = values["total_supply"]
    if supply is not None and supply < tokens_sold:
        raise ErrInvalidTokenConfig.with_message(
            f"total_supply must be at least the {tokens_sold} tokens already sold"
        )
