"""Shared test fixtures for the spl-storefront test suite."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from spl_storefront.chain.solana.models import SignatureStatus, TransferResult
from spl_storefront.config.settings import (
    AppConfig,
    DatabaseConfig,
    DatabaseEngine,
    StripeConfig,
)
from spl_storefront.payments.stripe.models import PaymentIntentInfo

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

WALLET = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_KEY = "test-admin-key"
TRANSFER_SIGNATURE = "5" * 88


@pytest.fixture
def app_config() -> AppConfig:
    """Provide a test AppConfig with an in-memory database and test Stripe keys."""
    return AppConfig(
        debug=True,
        admin_api_key=ADMIN_KEY,
        db=DatabaseConfig(
            engine=DatabaseEngine.SQLITE,
            dsn="sqlite+aiosqlite:///:memory:",
        ),
        stripe=StripeConfig(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET),
    )


def _created_intent(**kwargs: Any) -> PaymentIntentInfo:
    tx_id = kwargs["metadata"]["transaction_id"]
    return PaymentIntentInfo(
        id=f"pi_test_{tx_id}",
        client_secret=f"pi_test_{tx_id}_secret_abc",
        status="requires_payment_method",
        amount=kwargs["amount_cents"],
        currency="usd",
        metadata=kwargs["metadata"],
    )


@pytest.fixture
def fake_solana() -> MagicMock:
    """A SolanaService stand-in whose transfers confirm immediately."""
    sol = MagicMock()
    sol.connect = AsyncMock()
    sol.close = AsyncMock()
    sol.is_configured = True
    sol.transfer_tokens = AsyncMock(
        return_value=TransferResult(
            signature=TRANSFER_SIGNATURE,
            recipient_token_account="RecipientAta1111111111111111111111111111111",
            created_token_account=True,
            amount_base_units=50 * 10**9,
            confirmations=1,
        )
    )
    sol.get_signature_status = AsyncMock(
        return_value=SignatureStatus(
            signature=TRANSFER_SIGNATURE,
            found=True,
            confirmations=12,
            confirmation_status="confirmed",
        )
    )
    return sol


@pytest.fixture
async def engine(app_config: AppConfig, stripe_stub, fake_solana: MagicMock) -> AsyncIterator:
    """A fully initialised engine on in-memory SQLite with mocked providers.

    The Stripe service is real (so webhook signatures are really verified)
    but its network calls are replaced.
    """
    from spl_storefront.engine.client import StorefrontEngine

    eng = StorefrontEngine(app_config, stripe=stripe_stub, solana=fake_solana)
    await eng.initialize()
    yield eng
    await eng.close()


@pytest.fixture
def create_purchase(engine):
    """Create a pending transaction with an attached intent."""

    async def _create(usd_amount: str = "25.00", *, user_id: int = 1, wallet: str = WALLET):
        created = await engine.payment_service.create_payment_intent(
            user_id=user_id, usd_amount=usd_amount, wallet_address=wallet
        )
        return created.transaction

    return _create


@pytest.fixture
def paid_purchase(engine, create_purchase):
    """Create a transaction whose payment has succeeded (status ``processing``)."""

    async def _paid(usd_amount: str = "25.00", *, user_id: int = 1):
        tx = await create_purchase(usd_amount, user_id=user_id)
        await engine.payment_service.mark_payment_succeeded(tx.stripe_payment_intent_id)
        return await engine.transaction_service.get(tx.id)

    return _paid


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header for *payload*."""
    ts = int(timestamp if timestamp is not None else time.time())
    digest = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def event_payload(
    event_type: str,
    intent_id: str,
    *,
    event_id: str = "evt_test_1",
    status: str | None = None,
    last_error: str | None = None,
) -> str:
    """Serialize a minimal Stripe event for *intent_id*."""
    obj: dict[str, Any] = {"id": intent_id, "object": "payment_intent", "amount": 2500}
    if status is not None:
        obj["status"] = status
    if last_error is not None:
        obj["last_payment_error"] = {"message": last_error}
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
    )


@pytest.fixture
def signed_event():
    """Return ``(body_bytes, signature_header)`` for a Stripe event."""

    def _build(event_type: str, intent_id: str, **kwargs: Any) -> tuple[bytes, str]:
        payload = event_payload(event_type, intent_id, **kwargs)
        return payload.encode(), sign_payload(payload)

    return _build


@pytest.fixture
def stripe_stub(app_config: AppConfig):
    """A real StripeService with its network calls replaced."""
    from spl_storefront.payments.stripe.service import StripeService

    svc = StripeService(app_config.stripe)
    svc.create_payment_intent = AsyncMock(side_effect=_created_intent)
    svc.retrieve_payment_intent = AsyncMock()
    return svc


@pytest.fixture
def test_client(app_config: AppConfig):
    """Provide a FastAPI TestClient with the app wired to test config.

    The lifespan does not run, so tests set ``app.state.engine`` themselves.
    """
    from fastapi.testclient import TestClient

    from spl_storefront.api.app import create_app

    app = create_app(config=app_config)
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def api_client(app_config: AppConfig, stripe_stub, fake_solana: MagicMock):
    """A TestClient running the real lifespan on in-memory SQLite."""
    from fastapi.testclient import TestClient

    from spl_storefront.api.app import create_app

    app = create_app(config=app_config, stripe=stripe_stub, solana=fake_solana)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
