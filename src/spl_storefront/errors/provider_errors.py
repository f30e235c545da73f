"""Stripe & Solana provider errors."""

from __future__ import annotations

from spl_storefront.errors.storefront_errors import StorefrontError


class StripeProviderError(StorefrontError):
    """Error from the Stripe API."""

    def __init__(self, message: str, *, status_code: int = 502) -> None:
        super().__init__(message, status_code=status_code, code="stripe-error")


class SolanaError(StorefrontError):
    """Error from the Solana RPC or a failed token transfer."""

    def __init__(self, message: str, *, status_code: int = 502, code: str = "solana-error") -> None:
        super().__init__(message, status_code=status_code, code=code)


class TreasuryNotConfiguredError(SolanaError):
    """Treasury keypair, mint or token account is missing."""

    def __init__(self, message: str = "treasury wallet not configured") -> None:
        super().__init__(message, status_code=503, code="treasury-not-configured")


class TreasuryOwnershipError(SolanaError):
    """The treasury wallet does not own the treasury token account."""

    def __init__(self, expected_owner: str, actual_owner: str) -> None:
        super().__init__(
            f"treasury wallet {expected_owner} does not own the treasury token account "
            f"(owner is {actual_owner})",
            code="treasury-ownership-mismatch",
        )
        self.expected_owner = expected_owner
        self.actual_owner = actual_owner


class InsufficientTokenBalanceError(SolanaError):
    """The treasury token account cannot cover the transfer."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"insufficient token balance: need {required}, have {available} (base units)",
            code="insufficient-token-balance",
        )
        self.required = required
        self.available = available


class InsufficientFeeBalanceError(SolanaError):
    """The treasury wallet has too little SOL to pay fees."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"insufficient SOL for fees: need {required} lamports, have {available}",
            code="insufficient-fee-balance",
        )
        self.required = required
        self.available = available


class TransferConfirmationError(SolanaError):
    """A transfer was submitted but not confirmed.

    ``signature`` is kept so the outcome can be checked on-chain later.
    """

    def __init__(self, message: str, *, signature: str) -> None:
        super().__init__(message, code="transfer-not-confirmed")
        self.signature = signature
