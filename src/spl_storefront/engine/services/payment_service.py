"""Payment service: create intents and apply payment outcomes.

Create-intent flow:
1. Validate wallet address and amount against the active sale terms
2. Check the sale switch, remaining supply and the user's daily limit
3. Insert a ``pending`` transaction
4. Create the Stripe PaymentIntent and attach its id (or fail the row)

Payment outcomes (from webhooks or client confirmation) are applied with
conditional transitions so re-delivery is a no-op.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from spl_storefront.engine.models.base import utcnow
from spl_storefront.engine.models.transaction import Transaction
from spl_storefront.engine.status import BlockchainStatus, PaymentStatus
from spl_storefront.errors.definitions import (
    ErrAmountAboveMaximum,
    ErrAmountBelowMinimum,
    ErrDailyLimitExceeded,
    ErrInvalidAmount,
    ErrSaleInactive,
    ErrSupplyExhausted,
    ErrTransactionNotFound,
    ErrTransactionNotRetryable,
)
from spl_storefront.errors.provider_errors import StripeProviderError
from spl_storefront.utils.validators import (
    calculate_token_amount,
    parse_usd_amount,
    to_cents,
    validate_wallet_address,
)

if TYPE_CHECKING:
    from spl_storefront.engine.client import StorefrontEngine
    from spl_storefront.payments.stripe.models import PaymentIntentInfo

logger = logging.getLogger(__name__)


class PaymentOutcome(enum.StrEnum):
    """Result of applying a payment event to a transaction."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    IGNORED = "ignored"


@dataclass
class CreatedPayment:
    """A pending transaction and the intent the browser must confirm."""

    transaction: Transaction
    intent: PaymentIntentInfo


class PaymentService:
    """Stripe-facing purchase flow."""

    def __init__(self, engine: StorefrontEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Create intent
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        *,
        user_id: int,
        usd_amount: object,
        wallet_address: str,
        token_amount: object | None = None,
    ) -> CreatedPayment:
        """Validate a purchase, record it and create its PaymentIntent.

        Args:
            user_id: Authenticated buyer.
            usd_amount: Purchase amount in dollars.
            wallet_address: Recipient Solana wallet.
            token_amount: Optional client-side quote; must match the server price.

        Returns:
            The pending transaction and the created intent.

        Raises:
            StorefrontError: On validation failure (no row is written).
            StripeProviderError: If Stripe fails; the row is marked ``failed``.
        """
        wallet = validate_wallet_address(wallet_address)
        amount = parse_usd_amount(usd_amount)

        terms = await self._engine.token_config_service.get_terms()
        if not terms.sale_enabled:
            raise ErrSaleInactive
        if amount < terms.min_purchase_usd:
            raise ErrAmountBelowMinimum.with_message(
                f"minimum purchase is ${terms.min_purchase_usd}"
            )
        if amount > terms.max_purchase_usd:
            raise ErrAmountAboveMaximum.with_message(
                f"maximum purchase is ${terms.max_purchase_usd}"
            )

        tokens = calculate_token_amount(amount, terms.price_per_token)
        if tokens <= 0:
            raise ErrInvalidAmount.with_message("amount does not buy a whole token")
        if token_amount is not None and _as_decimal(token_amount) != tokens:
            raise ErrInvalidAmount.with_message(
                f"token amount does not match current price (expected {tokens})"
            )
        remaining = terms.remaining_supply
        if remaining is not None and tokens > remaining:
            raise ErrSupplyExhausted.with_message(f"only {remaining} tokens remain for sale")

        spent = await self._engine.transaction_service.daily_spending(user_id)
        if spent + amount > terms.daily_limit_usd:
            allowance = max(terms.daily_limit_usd - spent, Decimal(0))
            raise ErrDailyLimitExceeded.with_message(
                f"daily limit of ${terms.daily_limit_usd} exceeded; "
                f"remaining allowance today is ${allowance}"
            )

        tx = await self._engine.transaction_service.create(
            user_id=user_id,
            amount_usd=amount,
            token_amount=tokens,
            token_price=terms.price_per_token,
            wallet_address=wallet,
        )

        try:
            intent = await self._engine.stripe.create_payment_intent(
                amount_cents=to_cents(amount),
                metadata={
                    "transaction_id": str(tx.id),
                    "transaction_uuid": tx.transaction_uuid,
                    "user_id": str(user_id),
                    "wallet_address": wallet,
                    "token_amount": str(tokens),
                },
                idempotency_key=f"create-intent-{tx.transaction_uuid}",
                description=f"Purchase of {tokens} tokens",
            )
        except StripeProviderError as exc:
            await self._engine.transaction_service.transition(
                tx.id,
                PaymentStatus.FAILED,
                expected=[PaymentStatus.PENDING],
                error_message=exc.message,
            )
            logger.warning("Transaction %d failed: could not create payment intent", tx.id)
            raise

        tx = await self._engine.transaction_service.attach_payment_intent(tx.id, intent.id)
        return CreatedPayment(transaction=tx, intent=intent)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    async def mark_payment_succeeded(self, intent_id: str) -> tuple[PaymentOutcome, int | None]:
        """``pending -> processing`` for the transaction holding *intent_id*.

        A row failed by an earlier declined attempt on the same intent also
        moves to ``processing``: Stripe lets the buyer confirm that intent
        again, and a captured payment must not be dropped.

        Returns:
            The outcome and the transaction id (None when not found).
        """
        tx = await self._engine.transaction_service.get_by_payment_intent(intent_id)
        if tx is None:
            logger.warning("Payment succeeded for unknown intent %s", intent_id)
            return PaymentOutcome.NOT_FOUND, None

        updated = await self._engine.transaction_service.transition(
            tx.id,
            PaymentStatus.PROCESSING,
            expected=[PaymentStatus.PENDING, PaymentStatus.FAILED],
            conditions=[Transaction.payment_succeeded_at.is_(None)],
            blockchain_status=BlockchainStatus.PENDING,
            payment_succeeded_at=utcnow(),
            error_message=None,
        )
        if updated is None:
            logger.info(
                "Transaction %d already %s; payment success for %s ignored",
                tx.id,
                tx.status,
                intent_id,
            )
            return PaymentOutcome.DUPLICATE, tx.id
        return PaymentOutcome.APPLIED, tx.id

    async def mark_payment_failed(
        self, intent_id: str, reason: str
    ) -> tuple[PaymentOutcome, int | None]:
        """``pending -> failed`` for the transaction holding *intent_id*."""
        tx = await self._engine.transaction_service.get_by_payment_intent(intent_id)
        if tx is None:
            logger.warning("Payment failure for unknown intent %s", intent_id)
            return PaymentOutcome.NOT_FOUND, None

        updated = await self._engine.transaction_service.transition(
            tx.id,
            PaymentStatus.FAILED,
            expected=[PaymentStatus.PENDING],
            error_message=reason,
        )
        if updated is None:
            logger.info(
                "Transaction %d already %s; payment failure for %s ignored",
                tx.id,
                tx.status,
                intent_id,
            )
            return PaymentOutcome.DUPLICATE, tx.id
        return PaymentOutcome.APPLIED, tx.id

    async def apply_intent(self, intent: PaymentIntentInfo) -> tuple[PaymentOutcome, int | None]:
        """Apply a PaymentIntent's current Stripe status to its transaction."""
        if intent.status == "succeeded":
            return await self.mark_payment_succeeded(intent.id)
        if intent.status == "canceled":
            return await self.mark_payment_failed(intent.id, "Payment was canceled")
        if intent.status == "requires_payment_method" and intent.last_error:
            return await self.mark_payment_failed(intent.id, intent.last_error)
        return PaymentOutcome.IGNORED, None

    # ------------------------------------------------------------------
    # Client confirmation and retry
    # ------------------------------------------------------------------

    async def confirm_payment(self, *, user_id: int, intent_id: str) -> Transaction:
        """Re-check an intent with Stripe after the browser confirms it.

        Raises:
            StorefrontError: ``ErrTransactionNotFound`` if the intent isn't the user's.
            StripeProviderError: If Stripe can't be reached.
        """
        tx = await self._engine.transaction_service.get_by_payment_intent(intent_id)
        if tx is None or tx.user_id != user_id:
            raise ErrTransactionNotFound
        intent = await self._engine.stripe.retrieve_payment_intent(intent_id)
        outcome, _ = await self.apply_intent(intent)
        logger.info("Confirmed intent %s for transaction %d: %s", intent_id, tx.id, outcome)
        return await self._engine.transaction_service.get(tx.id)

    async def retry(self, tx_id: int, *, user_id: int | None = None) -> tuple[Transaction, str]:
        """Retry a failed transaction.

        For a failed payment the intent must still be confirmable, so a
        canceled intent can't be retried. Returns the transaction and, for
        payment retries, the client secret to confirm again.
        """
        tx = await self._engine.transaction_service.get(tx_id, user_id=user_id)
        if tx.status != PaymentStatus.FAILED:
            raise ErrTransactionNotRetryable

        client_secret = ""
        if tx.payment_succeeded_at is None:
            if not tx.stripe_payment_intent_id:
                raise ErrTransactionNotRetryable.with_message(
                    "payment was never created; start a new purchase"
                )
            intent = await self._engine.stripe.retrieve_payment_intent(tx.stripe_payment_intent_id)
            if intent.status == "canceled":
                raise ErrTransactionNotRetryable.with_message(
                    "payment intent was canceled; start a new purchase"
                )
            client_secret = intent.client_secret

        updated = await self._engine.transaction_service.retry(tx_id, user_id=user_id)
        return updated, client_secret


def _as_decimal(value: object) -> Decimal:
    try:
        return Decimal(str(value))
    except ArithmeticError as exc:
        raise ErrInvalidAmount from exc
