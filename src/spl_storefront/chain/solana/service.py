"""Solana RPC client: treasury checks and SPL token transfers.

Provides an async wrapper over ``solana.rpc.async_api.AsyncClient``:
- treasury ownership, token balance and SOL fee balance checks
- associated token account lookup and creation
- a single-transaction [create-ATA?, transfer_checked] submission
- bounded confirmation and signature status queries
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from spl_storefront.chain.solana.models import (
    MAX_CONFIRMATIONS,
    SignatureStatus,
    TokenAccountInfo,
    TransferResult,
    TreasuryStatus,
)
from spl_storefront.errors.provider_errors import (
    InsufficientFeeBalanceError,
    InsufficientTokenBalanceError,
    SolanaError,
    TransferConfirmationError,
    TreasuryNotConfiguredError,
    TreasuryOwnershipError,
)

if TYPE_CHECKING:
    from spl_storefront.config.settings import SolanaConfig

logger = logging.getLogger(__name__)

_RPC_ERRORS = (SolanaRpcException, RPCException, UnconfirmedTxError)


def load_keypair(secret: str) -> Keypair:
    """Parse a keypair from a JSON byte array (``solana-keygen`` format) or base58.

    Raises:
        TreasuryNotConfiguredError: If *secret* is empty or malformed.
    """
    secret = secret.strip()
    if not secret:
        raise TreasuryNotConfiguredError("treasury private key not configured")
    try:
        if secret.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(secret)))
        return Keypair.from_base58_string(secret)
    except ValueError as exc:
        raise TreasuryNotConfiguredError(f"invalid treasury private key: {exc}") from exc


def to_base_units(token_amount: Decimal, decimals: int) -> int:
    """Convert a whole-token amount to integer base units.

    Raises:
        SolanaError: If the amount is not positive or has more precision than the mint.
    """
    scaled = Decimal(token_amount).scaleb(decimals)
    if scaled <= 0 or scaled != scaled.to_integral_value():
        raise SolanaError(
            f"token amount {token_amount} is not representable with {decimals} decimals",
            status_code=400,
            code="invalid-token-amount",
        )
    return int(scaled)


class SolanaService:
    """Async Solana client bound to one treasury wallet and token mint.

    Usage::

        sol = SolanaService(config.solana)
        await sol.connect()
        try:
            result = await sol.transfer_tokens("Recipient...", Decimal("50"))
        finally:
            await sol.close()
    """

    def __init__(self, config: SolanaConfig, *, client: AsyncClient | None = None) -> None:
        """Initialize the Solana service.

        Args:
            config: Solana configuration (RPC url, treasury, mint...).
            client: Pre-built RPC client, mainly for tests.
        """
        self._config = config
        self._client: AsyncClient | None = client
        self._owns_client = client is None
        self._keypair: Keypair | None = None

    async def connect(self) -> None:
        """Create the underlying RPC client."""
        if self._client is None:
            self._client = AsyncClient(
                self._config.rpc_url,
                commitment=self.commitment,
                timeout=self._config.request_timeout_seconds,
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close the underlying RPC client."""
        if self._client is not None and self._owns_client:
            await self._client.close()
        self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def commitment(self) -> Commitment:
        return Commitment(self._config.commitment.value)

    @property
    def is_configured(self) -> bool:
        """True when the treasury key, mint and treasury token account are all set."""
        return bool(
            self._config.treasury_private_key
            and self._config.token_mint
            and self._config.treasury_token_account
        )

    @property
    def treasury_keypair(self) -> Keypair:
        if self._keypair is None:
            self._keypair = load_keypair(self._config.treasury_private_key)
        return self._keypair

    @property
    def treasury_wallet(self) -> Pubkey:
        return self.treasury_keypair.pubkey()

    @property
    def mint(self) -> Pubkey:
        return _pubkey(self._config.token_mint, "token mint")

    @property
    def treasury_token_account(self) -> Pubkey:
        return _pubkey(self._config.treasury_token_account, "treasury token account")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_sol_balance(self, address: Pubkey) -> int:
        """Return the lamport balance of *address*."""
        client = self._ensure_connected()
        try:
            resp = await client.get_balance(address, commitment=self.commitment)
        except _RPC_ERRORS as exc:
            raise SolanaError(f"getBalance failed for {address}: {exc}") from exc
        return int(resp.value)

    async def get_token_account(self, address: Pubkey) -> TokenAccountInfo | None:
        """Return the parsed token account at *address*, or None if it doesn't exist."""
        client = self._ensure_connected()
        try:
            resp = await client.get_account_info_json_parsed(address, commitment=self.commitment)
        except _RPC_ERRORS as exc:
            raise SolanaError(f"getAccountInfo failed for {address}: {exc}") from exc
        if resp.value is None:
            return None
        info = _parsed_info(resp.value)
        token_amount = info.get("tokenAmount") or {}
        return TokenAccountInfo(
            address=str(address),
            owner=str(info.get("owner", "")),
            mint=str(info.get("mint", "")),
            amount=int(token_amount.get("amount", 0)),
            decimals=int(token_amount.get("decimals", self._config.token_decimals)),
        )

    async def account_exists(self, address: Pubkey) -> bool:
        client = self._ensure_connected()
        try:
            resp = await client.get_account_info(address, commitment=self.commitment)
        except _RPC_ERRORS as exc:
            raise SolanaError(f"getAccountInfo failed for {address}: {exc}") from exc
        return resp.value is not None

    async def get_treasury_status(self) -> TreasuryStatus:
        """Report treasury balances and whether the wallet owns the token account.

        Raises:
            TreasuryNotConfiguredError: If the treasury is not configured or
                the token account doesn't exist.
        """
        if not self.is_configured:
            raise TreasuryNotConfiguredError
        wallet = self.treasury_wallet
        account = await self.get_token_account(self.treasury_token_account)
        if account is None:
            raise TreasuryNotConfiguredError(
                f"treasury token account {self.treasury_token_account} not found"
            )
        lamports = await self.get_sol_balance(wallet)
        return TreasuryStatus(
            wallet=str(wallet),
            token_account=account.address,
            owner=account.owner,
            owner_matches=account.owner == str(wallet),
            sol_balance_lamports=lamports,
            token_balance=account.ui_amount,
            decimals=account.decimals,
            min_sol_balance_lamports=self._config.min_sol_balance_lamports,
        )

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        """Look up a signature on the cluster (searching transaction history)."""
        client = self._ensure_connected()
        try:
            sig = Signature.from_string(signature)
        except ValueError as exc:
            raise SolanaError(
                f"invalid transaction signature: {signature}", status_code=400
            ) from exc
        try:
            resp = await client.get_signature_statuses([sig], search_transaction_history=True)
        except _RPC_ERRORS as exc:
            raise SolanaError(f"getSignatureStatuses failed: {exc}") from exc

        status = resp.value[0] if resp.value else None
        if status is None:
            return SignatureStatus(signature=signature, found=False)
        return SignatureStatus(
            signature=signature,
            found=True,
            confirmations=_confirmations(status),
            confirmation_status=_status_name(status.confirmation_status),
            error=str(status.err) if status.err is not None else None,
        )

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    async def preflight(self, base_units: int | None = None) -> TokenAccountInfo:
        """Check treasury ownership, token balance and SOL fee balance.

        Returns:
            The treasury token account.

        Raises:
            TreasuryOwnershipError, InsufficientTokenBalanceError,
            InsufficientFeeBalanceError, TreasuryNotConfiguredError
        """
        if not self.is_configured:
            raise TreasuryNotConfiguredError
        wallet = self.treasury_wallet
        account = await self.get_token_account(self.treasury_token_account)
        if account is None:
            raise TreasuryNotConfiguredError(
                f"treasury token account {self.treasury_token_account} not found"
            )
        if account.owner != str(wallet):
            raise TreasuryOwnershipError(str(wallet), account.owner)
        if base_units is not None and account.amount < base_units:
            raise InsufficientTokenBalanceError(base_units, account.amount)
        lamports = await self.get_sol_balance(wallet)
        if lamports < self._config.min_sol_balance_lamports:
            raise InsufficientFeeBalanceError(self._config.min_sol_balance_lamports, lamports)
        return account

    async def transfer_tokens(self, recipient_wallet: str, token_amount: Decimal) -> TransferResult:
        """Send *token_amount* whole tokens from the treasury to *recipient_wallet*.

        Creates the recipient's associated token account in the same
        transaction when it doesn't exist yet, then waits for confirmation
        up to ``confirm_timeout_seconds``.

        Raises:
            SolanaError: On preflight, submission or RPC failure.
            TransferConfirmationError: If the transfer was sent but not confirmed.
        """
        client = self._ensure_connected()
        recipient = _pubkey(recipient_wallet, "recipient wallet")

        treasury = await self.preflight()
        base_units = to_base_units(token_amount, treasury.decimals)
        if treasury.amount < base_units:
            raise InsufficientTokenBalanceError(base_units, treasury.amount)

        payer = self.treasury_keypair
        mint = self.mint
        recipient_ata = get_associated_token_address(recipient, mint)
        create_ata = not await self.account_exists(recipient_ata)

        instructions = []
        if create_ata:
            logger.info("Recipient token account %s missing; creating it", recipient_ata)
            instructions.append(create_associated_token_account(payer.pubkey(), recipient, mint))
        instructions.append(
            transfer_checked(
                TransferCheckedParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=self.treasury_token_account,
                    mint=mint,
                    dest=recipient_ata,
                    owner=payer.pubkey(),
                    amount=base_units,
                    decimals=treasury.decimals,
                )
            )
        )

        try:
            blockhash = (await client.get_latest_blockhash(commitment=self.commitment)).value.blockhash
            message = Message.new_with_blockhash(instructions, payer.pubkey(), blockhash)
            tx = Transaction([payer], message, blockhash)
            resp = await client.send_raw_transaction(
                bytes(tx),
                opts=TxOpts(skip_preflight=False, preflight_commitment=self.commitment),
            )
        except _RPC_ERRORS as exc:
            raise SolanaError(f"token transfer submission failed: {exc}") from exc

        signature = resp.value
        logger.info(
            "Submitted transfer of %s base units to %s: %s", base_units, recipient_ata, signature
        )
        confirmations = await self._confirm(signature)
        return TransferResult(
            signature=str(signature),
            recipient_token_account=str(recipient_ata),
            created_token_account=create_ata,
            amount_base_units=base_units,
            confirmations=confirmations,
        )

    async def _confirm(self, signature: Signature) -> int:
        client = self._ensure_connected()
        timeout = self._config.confirm_timeout_seconds
        try:
            resp = await asyncio.wait_for(
                client.confirm_transaction(signature, commitment=self.commitment),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise TransferConfirmationError(
                f"transfer {signature} not confirmed within {timeout:g}s", signature=str(signature)
            ) from exc
        except _RPC_ERRORS as exc:
            raise TransferConfirmationError(
                f"transfer {signature} confirmation failed: {exc}", signature=str(signature)
            ) from exc

        status = resp.value[0] if resp.value else None
        if status is None:
            raise TransferConfirmationError(
                f"transfer {signature} not found after confirmation", signature=str(signature)
            )
        if status.err is not None:
            raise TransferConfirmationError(
                f"transfer {signature} failed on-chain: {status.err}", signature=str(signature)
            )
        return max(1, _confirmations(status))

    def _ensure_connected(self) -> AsyncClient:
        if self._client is None:
            msg = "Solana service is not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client


def _pubkey(value: str, what: str) -> Pubkey:
    if not value:
        raise TreasuryNotConfiguredError(f"{what} not configured")
    try:
        return Pubkey.from_string(value)
    except ValueError as exc:
        raise SolanaError(f"invalid {what}: {value}", status_code=400) from exc


def _parsed_info(account: Any) -> dict[str, Any]:
    """Extract ``parsed.info`` from a jsonParsed account value."""
    parsed = getattr(account.data, "parsed", None)
    if not isinstance(parsed, dict):
        raise SolanaError("account is not a parsed SPL token account")
    info = parsed.get("info")
    return info if isinstance(info, dict) else {}


def _confirmations(status: Any) -> int:
    # None means the slot is rooted.
    if status.confirmations is None:
        return MAX_CONFIRMATIONS
    return int(status.confirmations)


def _status_name(value: Any) -> str | None:
    if value is None:
        return None
    name = str(value)
    # solders enums render as "TransactionConfirmationStatus.Confirmed"
    return name.rsplit(".", 1)[-1].lower()
