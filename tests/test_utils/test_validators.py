"""Tests for wallet address and amount validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from spl_storefront.errors.storefront_errors import StorefrontError
from spl_storefront.utils.validators import (
    calculate_token_amount,
    is_valid_wallet_address,
    parse_usd_amount,
    to_cents,
    validate_wallet_address,
)

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class TestWalletAddress:
    def test_valid_addresses(self) -> None:
        assert is_valid_wallet_address(USDC_MINT)
        assert is_valid_wallet_address("11111111111111111111111111111111")
        assert is_valid_wallet_address("So11111111111111111111111111111111111111112")

    @pytest.mark.parametrize(
        "address",
        [
            "",
            "short",
            "0OIl" * 10,  # not in the base58 alphabet
            USDC_MINT + "x",  # too long
            "1" * 31,
        ],
    )
    def test_invalid_addresses(self, address: str) -> None:
        assert not is_valid_wallet_address(address)

    def test_wrong_decoded_length(self) -> None:
        # 44 chars of base58 that decode to more than 32 bytes
        assert not is_valid_wallet_address("z" * 44)

    def test_non_string(self) -> None:
        assert not is_valid_wallet_address(None)  # type: ignore[arg-type]

    def test_validate_strips(self) -> None:
        assert validate_wallet_address(f"  {USDC_MINT} ") == USDC_MINT

    def test_validate_raises(self) -> None:
        with pytest.raises(StorefrontError) as exc_info:
            validate_wallet_address("not-a-wallet")
        assert exc_info.value.code == "invalid-wallet-address"
        assert exc_info.value.status_code == 400


class TestUsdAmount:
    def test_parses(self) -> None:
        assert parse_usd_amount("25") == Decimal("25")
        assert parse_usd_amount("25.50") == Decimal("25.50")
        assert parse_usd_amount(10) == Decimal("10")

    @pytest.mark.parametrize(
        "value",
        ["0", "-5", "abc", "1.001", "NaN", "Infinity", None, "1e30", "1e-30", "10000000000"],
    )
    def test_rejects(self, value: object) -> None:
        with pytest.raises(StorefrontError) as exc_info:
            parse_usd_amount(value)
        assert exc_info.value.code == "invalid-amount"

    def test_to_cents(self) -> None:
        assert to_cents(Decimal("25.00")) == 2500
        assert to_cents(Decimal("0.10")) == 10


class TestTokenAmount:
    def test_whole_tokens(self) -> None:
        assert calculate_token_amount(Decimal("25"), Decimal("0.50")) == Decimal(50)

    def test_rounds_down(self) -> None:
        assert calculate_token_amount(Decimal("10.99"), Decimal("0.50")) == Decimal(21)
        assert calculate_token_amount(Decimal("1"), Decimal("3")) == Decimal(0)

    def test_price_must_be_positive(self) -> None:
        with pytest.raises(StorefrontError):
            calculate_token_amount(Decimal("10"), Decimal("0"))
