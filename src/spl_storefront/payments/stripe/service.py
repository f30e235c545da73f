"""Stripe client: payment intents and webhook verification.

The Stripe SDK is synchronous; calls run in a worker thread via
:func:`asyncio.to_thread`. The API key is passed per call so no
module-level ``stripe.api_key`` is ever set.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

import stripe

from spl_storefront.errors.definitions import (
    ErrInvalidWebhookPayload,
    ErrInvalidWebhookSignature,
    ErrMissingWebhookSignature,
    ErrWebhookNotConfigured,
)
from spl_storefront.errors.provider_errors import StripeProviderError
from spl_storefront.payments.stripe.models import PaymentIntentInfo, WebhookEvent

if TYPE_CHECKING:
    from spl_storefront.config.settings import StripeConfig

logger = logging.getLogger(__name__)


class StripeService:
    """Thin async wrapper around the Stripe PaymentIntent API.

    Usage::

        svc = StripeService(config.stripe)
        intent = await svc.create_payment_intent(
            amount_cents=2500, metadata={"transaction_id": "7"}, idempotency_key="tx-7"
        )
    """

    def __init__(self, config: StripeConfig) -> None:
        self._config = config

    @property
    def is_configured(self) -> bool:
        """True when a secret key is present."""
        return bool(self._config.secret_key)

    @property
    def currency(self) -> str:
        return self._config.currency

    # ------------------------------------------------------------------
    # Payment intents
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        *,
        amount_cents: int,
        metadata: dict[str, str],
        idempotency_key: str,
        description: str = "",
    ) -> PaymentIntentInfo:
        """Create a PaymentIntent for *amount_cents*.

        Raises:
            StripeProviderError: If Stripe rejects the request or is unreachable.
        """
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": self._config.currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if description:
            params["description"] = description
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self._config.secret_key,
                idempotency_key=idempotency_key,
                **params,
            )
        except stripe.StripeError as exc:
            raise StripeProviderError(f"failed to create payment intent: {_describe(exc)}") from exc
        info = PaymentIntentInfo.from_stripe(intent)
        logger.info("Created payment intent %s for %d cents", info.id, amount_cents)
        return info

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntentInfo:
        """Fetch the current state of a PaymentIntent.

        Raises:
            StripeProviderError: If Stripe rejects the request or is unreachable.
        """
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve,
                intent_id,
                api_key=self._config.secret_key,
            )
        except stripe.StripeError as exc:
            raise StripeProviderError(
                f"failed to retrieve payment intent {intent_id}: {_describe(exc)}"
            ) from exc
        return PaymentIntentInfo.from_stripe(intent)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature_header: str | None) -> WebhookEvent:
        """Verify a webhook signature and parse the event.

        Args:
            payload: The raw, unmodified request body.
            signature_header: Value of the ``Stripe-Signature`` header.

        Raises:
            StorefrontError: ``ErrWebhookNotConfigured``, ``ErrMissingWebhookSignature``,
                ``ErrInvalidWebhookSignature`` or ``ErrInvalidWebhookPayload``.
        """
        if not self._config.webhook_secret:
            raise ErrWebhookNotConfigured
        if not signature_header:
            raise ErrMissingWebhookSignature

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ErrInvalidWebhookPayload from exc

        try:
            stripe.WebhookSignature.verify_header(
                text,
                signature_header,
                self._config.webhook_secret,
                tolerance=self._config.webhook_tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise ErrInvalidWebhookSignature from exc

        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ErrInvalidWebhookPayload from exc
        if not isinstance(data, dict) or "type" not in data:
            raise ErrInvalidWebhookPayload
        return WebhookEvent.from_dict(data)


def _describe(exc: stripe.StripeError) -> str:
    return getattr(exc, "user_message", None) or str(exc) or exc.__class__.__name__
