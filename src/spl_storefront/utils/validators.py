"""Input validation helpers: wallet addresses and token pricing."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation

import base58

from spl_storefront.errors.definitions import ErrInvalidAmount, ErrInvalidWalletAddress

_MIN_ADDRESS_LEN = 32
_MAX_ADDRESS_LEN = 44
_PUBKEY_BYTES = 32
# amount_usd is Numeric(12, 2): at most ten integer digits
_MAX_AMOUNT_EXPONENT = 9


def is_valid_wallet_address(address: str) -> bool:
    """Return True if *address* is a base58 Solana public key (32 bytes)."""
    if not isinstance(address, str):
        return False
    if not _MIN_ADDRESS_LEN <= len(address) <= _MAX_ADDRESS_LEN:
        return False
    try:
        raw = base58.b58decode(address)
    except ValueError:
        return False
    return len(raw) == _PUBKEY_BYTES


def validate_wallet_address(address: str) -> str:
    """Return *address* stripped, or raise ``ErrInvalidWalletAddress``."""
    address = (address or "").strip()
    if not is_valid_wallet_address(address):
        raise ErrInvalidWalletAddress
    return address


def parse_usd_amount(value: object) -> Decimal:
    """Parse a positive dollar amount with at most two decimal places.

    Raises:
        StorefrontError: ``ErrInvalidAmount`` for anything else.
    """
    try:
        amount = Decimal(str(value))
        if not amount.is_finite() or amount <= 0 or amount.adjusted() > _MAX_AMOUNT_EXPONENT:
            raise ErrInvalidAmount
        if amount != amount.quantize(Decimal("0.01")):
            raise ErrInvalidAmount
    except (InvalidOperation, ValueError) as exc:
        raise ErrInvalidAmount from exc
    return amount


def calculate_token_amount(usd_amount: Decimal, price_per_token: Decimal) -> Decimal:
    """Whole tokens a purchase buys: ``floor(usd_amount / price_per_token)``."""
    if price_per_token <= 0:
        raise ErrInvalidAmount.with_message("token price must be positive")
    return (Decimal(usd_amount) / Decimal(price_per_token)).to_integral_value(rounding=ROUND_FLOOR)


def to_cents(usd_amount: Decimal) -> int:
    """Convert dollars to integer cents for the payment provider."""
    return int((Decimal(usd_amount) * 100).to_integral_value())
