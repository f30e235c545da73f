"""TokenConfig model: pricing, purchase limits and supply counters."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from spl_storefront.engine.models.base import Base, TimestampMixin


class TokenConfig(Base, TimestampMixin):
    """Sale configuration. At most one row has ``is_active = True``.

    ``is_active`` selects the current row; ``sale_enabled`` is the switch
    that opens or closes purchases.
    """

    __tablename__ = "token_configuration"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    price_per_token: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    min_purchase_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    max_purchase_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    daily_limit_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_supply: Mapped[Decimal | None] = mapped_column(Numeric(30, 9), nullable=True)
    tokens_sold: Mapped[Decimal] = mapped_column(
        Numeric(30, 9), nullable=False, default=Decimal(0)
    )
    sale_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    @property
    def remaining_supply(self) -> Decimal | None:
        if self.total_supply is None:
            return None
        return self.total_supply - (self.tokens_sold or Decimal(0))

    def __repr__(self) -> str:
        return f"<TokenConfig id={self.id} price={self.price_per_token} active={self.is_active}>"
