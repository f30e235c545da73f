"""Stripe data models: PaymentIntentInfo, WebhookEvent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PaymentIntentInfo:
    """The parts of a Stripe PaymentIntent the storefront uses.

    Attributes:
        id: PaymentIntent id (``pi_...``).
        client_secret: Secret handed to the browser to confirm the payment.
        status: Stripe's own status string (``succeeded``, ``canceled``...).
        amount: Amount in the smallest currency unit.
        currency: ISO currency code.
        last_error: ``last_payment_error.message`` if Stripe reported one.
        metadata: Intent metadata.
    """

    id: str = ""
    client_secret: str = ""
    status: str = ""
    amount: int = 0
    currency: str = ""
    last_error: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: Any) -> PaymentIntentInfo:
        """Build from a ``stripe.PaymentIntent`` or a webhook ``data.object`` dict."""
        if not isinstance(obj, dict):
            obj = obj.to_dict()
        last_error = obj.get("last_payment_error") or {}
        return cls(
            id=obj.get("id") or "",
            client_secret=obj.get("client_secret") or "",
            status=obj.get("status") or "",
            amount=int(obj.get("amount") or 0),
            currency=obj.get("currency") or "",
            last_error=last_error.get("message") if last_error else None,
            metadata=dict(obj.get("metadata") or {}),
        )


@dataclass
class WebhookEvent:
    """A verified Stripe webhook event."""

    id: str
    type: str
    data_object: dict[str, Any]
    payload: dict[str, Any]

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> WebhookEvent:
        data = payload.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        return cls(
            id=str(payload.get("id") or ""),
            type=str(payload.get("type") or ""),
            data_object=obj if isinstance(obj, dict) else {},
            payload=payload,
        )
