"""Solana data models: token accounts, treasury status, transfer results."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

# Reported when the cluster has rooted a transaction and no longer counts.
MAX_CONFIRMATIONS = 32


@dataclass
class TokenAccountInfo:
    """A parsed SPL token account.

    Attributes:
        address: Token account public key (base58).
        owner: Wallet that owns the token account.
        mint: Token mint public key.
        amount: Balance in base units.
        decimals: Mint decimals.
    """

    address: str
    owner: str
    mint: str
    amount: int
    decimals: int

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.amount).scaleb(-self.decimals)


@dataclass
class TreasuryStatus:
    """Treasury wallet health as reported to admins."""

    wallet: str
    token_account: str
    owner: str
    owner_matches: bool
    sol_balance_lamports: int
    token_balance: Decimal
    decimals: int
    min_sol_balance_lamports: int

    @property
    def has_fee_balance(self) -> bool:
        return self.sol_balance_lamports >= self.min_sol_balance_lamports

    def to_dict(self) -> dict[str, object]:
        return {
            "wallet": self.wallet,
            "token_account": self.token_account,
            "owner": self.owner,
            "owner_matches": self.owner_matches,
            "sol_balance_lamports": self.sol_balance_lamports,
            "sol_balance": str(Decimal(self.sol_balance_lamports).scaleb(-9)),
            "token_balance": str(self.token_balance),
            "decimals": self.decimals,
            "has_fee_balance": self.has_fee_balance,
        }


@dataclass
class TransferResult:
    """Outcome of a confirmed SPL token transfer."""

    signature: str
    recipient_token_account: str
    created_token_account: bool
    amount_base_units: int
    confirmations: int


@dataclass
class SignatureStatus:
    """Cluster view of one transaction signature."""

    signature: str
    found: bool
    confirmations: int = 0
    confirmation_status: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.found and self.error is None
